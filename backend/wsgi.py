# backend/wsgi.py
from plantops import create_app

app = create_app()
