from quizroom import create_app

app = create_app()

if __name__ == '__main__':
    # Phase timers run on daemon threads, so the dev server needs threading
    app.run(debug=True, threaded=True, use_reloader=False)
