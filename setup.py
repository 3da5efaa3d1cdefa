from setuptools import setup, find_packages

setup(
    name="npd-reminders",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*", "alembic", "alembic.*"]),
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy",
        "alembic",
        "psycopg2-binary",
        "redis",
        "celery",
        "python-dotenv",
        "pydantic",
        "pydantic-settings",
        "firebase-admin",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
        "requests",
        "python-dateutil",
        "pyee>=9",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
)
