from setuptools import setup, find_packages

setup(
    name="extension-host",
    version="0.1.0",
    packages=find_packages(include=["extension_host", "extension_host.*"]),
    py_modules=["main"],
    python_requires=">=3.10",
    install_requires=[
        "aiosqlite",
        "click",
        "pydantic>=2",
        "python-dotenv",
        "restrictedpython",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "extension-host=main:main",
        ],
    },
)
