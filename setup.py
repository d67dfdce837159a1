"""
Setup configuration for powerbrief package.
"""

from setuptools import setup, find_packages

setup(
    name="powerbrief",
    version="1.0.0",
    description="OneSheet context assembly and AI generation service",
    packages=find_packages(include=["powerbrief", "powerbrief.*"]),
    package_data={"powerbrief": ["prompts/*.yaml"]},
    python_requires=">=3.9",
    install_requires=[
        "supabase>=2.0.0",
        "anthropic>=0.40.0",
        "google-genai>=1.0.0",
        "httpx>=0.27.0",
        "pydantic>=2.0.0",
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        "slowapi>=0.1.9",
        "python-dotenv>=1.0.0",
        "PyYAML>=6.0",
        "logfire>=2.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
        ],
    },
)
