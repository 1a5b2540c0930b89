"""Room domain services: directory, game machine, answers and scoring.

Everything here is transport-free and holds its state in memory; the HTTP
blueprint and the polling client only talk to it through RoomDirectory.
"""
