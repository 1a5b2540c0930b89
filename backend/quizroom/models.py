from quizroom import db


class Word(db.Model):
    __tablename__ = 'word'
    id = db.Column(db.Integer, primary_key=True)
    english = db.Column(db.String(128), nullable=False, index=True)
    meaning = db.Column(db.String(256), nullable=False)
    level = db.Column(db.String(8), nullable=False, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'english': self.english,
            'meaning': self.meaning,
            'level': self.level,
        }


# Starter vocabulary: (english, turkish meaning, CEFR level)
STARTER_WORDS = [
    ('apple', 'elma', 'A1'),
    ('house', 'ev', 'A1'),
    ('water', 'su', 'A1'),
    ('book', 'kitap', 'A1'),
    ('friend', 'arkadaş', 'A1'),
    ('school', 'okul', 'A1'),
    ('weather', 'hava durumu', 'A2'),
    ('journey', 'yolculuk', 'A2'),
    ('market', 'pazar', 'A2'),
    ('holiday', 'tatil', 'A2'),
    ('neighbour', 'komşu', 'A2'),
    ('borrow', 'ödünç almak', 'A2'),
    ('achieve', 'başarmak', 'B1'),
    ('improve', 'geliştirmek', 'B1'),
    ('opinion', 'fikir', 'B1'),
    ('suggest', 'önermek', 'B1'),
    ('environment', 'çevre', 'B1'),
    ('reliable', 'güvenilir', 'B1'),
    ('consequence', 'sonuç', 'B2'),
    ('reluctant', 'isteksiz', 'B2'),
    ('negotiate', 'müzakere etmek', 'B2'),
    ('thorough', 'titiz', 'B2'),
    ('evidence', 'kanıt', 'B2'),
    ('emphasize', 'vurgulamak', 'B2'),
    ('ambiguous', 'belirsiz', 'C1'),
    ('meticulous', 'çok dikkatli', 'C1'),
    ('inevitable', 'kaçınılmaz', 'C1'),
    ('scrutiny', 'inceleme', 'C1'),
    ('undermine', 'baltalamak', 'C1'),
    ('compelling', 'ikna edici', 'C1'),
    ('ubiquitous', 'her yerde bulunan', 'C2'),
    ('ephemeral', 'geçici', 'C2'),
    ('obfuscate', 'karartmak', 'C2'),
    ('quintessential', 'en tipik', 'C2'),
    ('pragmatic', 'pragmatik', 'C2'),
    ('sycophant', 'dalkavuk', 'C2'),
]


def seed_words(words=STARTER_WORDS) -> int:
    """Insert any starter words that are not already present."""
    existing = {w.english for w in Word.query.all()}
    added = 0
    for english, meaning, level in words:
        if english in existing:
            continue
        db.session.add(Word(english=english, meaning=meaning, level=level))
        added += 1
    db.session.commit()
    return added
