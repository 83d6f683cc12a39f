from setuptools import setup, find_packages

setup(
    name="chatvault",
    version="0.1.0",
    description="Messaging API with server-side per-conversation encryption",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "fastapi==0.116.1",
        "uvicorn[standard]==0.35.0",
        "sqlalchemy[asyncio]==2.0.42",
        "aiosqlite==0.21.0",
        "asyncpg==0.30.0",
        "environs==14.2.0",
        "python-jose[cryptography]==3.5.0",
        "cryptography>=44.0.0",
        "pydantic==2.11.7",
        "dishka==1.6.0",
        "redis==6.2.0",
        "httpx==0.28.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.24",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "chatvault-api=chatvault.main:main",
            "chatvault-chat=chatvault.client.cli:main",
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
