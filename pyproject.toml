[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "imail"
version = "0.0.19"
description = "Mail service building blocks: MIME header and multipart parsing, IMAP body structures, template helpers, self-signed certificates and runtime configuration"
requires-python = ">=3.10"
keywords = ["email", "mime", "multipart", "imap", "bodystructure", "certificate", "tls"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Email",
    "Topic :: Security :: Cryptography",
]
dependencies = [
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
imail-cert = "imail.cert:main"

[tool.hatch.build.targets.wheel]
packages = ["imail"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
