#!/usr/bin/env python3
"""
Setup script for wschat, a WebSocket chat client core
"""

from setuptools import setup, find_packages

setup(
    name="wschat",
    version="0.1.0",
    description="Single-room WebSocket chat client with optimistic send and automatic reconnect",
    packages=find_packages(include=["chat", "chat.*", "common", "common.*"]),
    install_requires=[
        "websockets>=15.0",
        "typer>=0.12.3",
        "rich>=13.9.2",
        "aioconsole>=0.8.1",
        "PyYAML>=6.0.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.4.2",
            "pytest-asyncio>=1.2.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'wschat=chat.cli:main',
        ],
    },
)
