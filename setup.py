from setuptools import setup, find_packages

setup(
    name="voiceinterview",
    version="0.1.0",
    description="Real-time voice interview pipeline with turn taking, recovery and transcript analytics",
    author="",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pyaudio>=0.2.11",
        "numpy>=1.21.0",
        "rich>=12.5.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0.0",
        "pypubsub>=4.0.3",
        "aiohttp>=3.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "voiceinterview=voiceinterview.main:main",
        ],
    },
)
