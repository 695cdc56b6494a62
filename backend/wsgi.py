# backend/wsgi.py
from pettycash import create_app

app = create_app()
