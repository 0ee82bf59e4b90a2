[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kubescrape"
version = "0.1.0"
description = "Collect and group kubelet data: stats summary, pods, cAdvisor containers and node details."
requires-python = ">=3.10"
dependencies = [
    "requests",
]
keywords = ["kubernetes", "kubelet", "cadvisor", "metrics", "monitoring"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["kubescrape"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
