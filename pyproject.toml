[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "drynn"
version = "0.1.0"
description = "Server configuration, authentication and game API client tools for the Drynn turn-based strategy game"
requires-python = ">=3.10"
keywords = ["game", "turn-based", "strategy", "jwt", "bcrypt", "mailgun", "cli"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment :: Turn Based Strategy",
]
dependencies = [
    "bcrypt",
    "pyjwt",
    "python-dotenv",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
drynn-email = "drynn.email_cli:main"

[tool.hatch.build.targets.wheel]
packages = ["drynn"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
