"""
uvicorn target (``server.asgi:app``).

A local .env file fills in the process environment first; variables
already exported in the shell win. Configuration is then read once and
handed to the app factory.
"""

from dotenv import find_dotenv, load_dotenv

load_dotenv(find_dotenv(usecwd=True), override=False)

# pylint: disable=wrong-import-position
from config import AppConfig
from server.app import create_app

app = create_app(AppConfig.load_from_env())
