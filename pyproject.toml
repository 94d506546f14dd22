[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "turnkit"
version = "0.1.0"
description = "Building blocks for TURN/STUN: STUN message and ChannelData codecs, allocations, permissions and channel bindings"
requires-python = ">=3.10"
dependencies = []
keywords = ["turn", "stun", "nat", "relay", "webrtc", "ice", "udp", "channeldata"]
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
    "Topic :: System :: Networking",
    "Topic :: Internet",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["turnkit"]

[tool.hatch.build.targets.sdist]
include = ["turnkit", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
