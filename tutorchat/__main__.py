"""
Tutorchat - a real-time tutoring assistant answering questions on the
documents of the students, or helping them with their homework.

"""

from .cli import app

app(prog_name="tutorchat")
