from setuptools import setup, find_packages

setup(
    name="uitest_agent",
    version="0.1.0",
    packages=find_packages(include=["uitest_agent", "uitest_agent.*"]),
    include_package_data=True,
    install_requires=[
        "playwright==1.52.0",
        "pytest-playwright",
        "pydantic",
        "langgraph",
        "openai",
        "python-dotenv",
        "pyyaml",
        "redis",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires='>=3.10',
)
