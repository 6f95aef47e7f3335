from setuptools import setup, find_packages

setup(
    name="tailor-ops",
    version="1.0.0",
    packages=find_packages(include=["tailor_ops", "tailor_ops.*"]),
    install_requires=[
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "python-dotenv>=1.0",
        "SQLAlchemy[asyncio]>=2.0",
        "aiosqlite>=0.19",
        "asyncpg>=0.28",
        "twilio>=8.10.0",
        "fastapi>=0.100",
        "uvicorn>=0.20",
        "websockets>=11.0",
        "httpx>=0.24",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ]
    },
    python_requires=">=3.9",
)
