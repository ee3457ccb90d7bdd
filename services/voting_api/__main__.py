"""Run the API with ``python -m voting_api``."""
from .main import run

run()
