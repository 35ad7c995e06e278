[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "invoicepay"
version = "0.1.0"
description = "Invoices, milestone billing rules and Razorpay payment verification for freelance projects"
requires-python = ">=3.10"
dependencies = [
    "python-dotenv",
]
keywords = ["invoice", "billing", "milestones", "payments", "razorpay", "freelance", "pdf"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial :: Accounting",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["invoicepay"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
