[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lidview"
version = "0.1.0"
description = "Interactive point cloud viewer with an octree-based level of detail and eye-dome lighting"
requires-python = ">=3.10"
keywords = ["lidar", "point cloud", "octree", "viewer", "frustum culling", "eye-dome lighting"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Visualization",
    "Topic :: Scientific/Engineering :: GIS",
]
dependencies = [
    "numpy",
    "pygame",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
lidview = "lidview.viewer:main"

[tool.hatch.build.targets.wheel]
packages = ["lidview"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
