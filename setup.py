from setuptools import setup, find_packages

setup(
    name="polybrain",
    version="1.0.0",
    description="MCP server that lets coding agents chat with other LLMs, with a self-supervising background process",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "mcp>=1.10.0,<2",
        "openai>=1.40.0",
        "httpx>=0.27.0",
        "psutil>=6.0.0",
        "pydantic>=2.0.0",
        "starlette>=0.27.0",
        "PyYAML>=6.0",
        "python-dotenv>=1.0.0",
        "typer>=0.12.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "polybrain=polybrain.main:polybrain",
        ],
    },
    python_requires=">=3.10",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
)
