[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "brunchrat"
version = "0.1.0"
description = "A brunch-table stealth game core: scene files, a software audio mixer and the rat-versus-cat game rules"
requires-python = ">=3.10"
dependencies = ["numpy"]
keywords = ["game", "scene", "audio", "mixer", "simulation", "png", "wav"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment :: Simulation",
    "Topic :: Multimedia :: Sound/Audio :: Mixers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["brunchrat"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
