"""Application package for the Study Bot backend.

This package exposes the service, repository and model modules used by
the FastAPI application that generates quizzes and study summaries with
an external chat-completion API and grades quiz attempts.
"""
