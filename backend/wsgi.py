# backend/wsgi.py
from handheld import create_app

app = create_app()
