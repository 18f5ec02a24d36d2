from setuptools import setup, find_packages

setup(
    name="routegate",
    version="0.1.0",
    packages=find_packages(include=["routegate", "routegate.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "httpx>=0.27",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "redis>=5.0",
        "sqlalchemy[asyncio]>=2.0",
        "aiosqlite>=0.19",
        "uvicorn>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
)
