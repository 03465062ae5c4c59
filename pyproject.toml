[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "resmetrics"
version = "0.1.0"
description = "Resource metrics from kubelets: decoding, scraping, options and a metrics API storage layer"
requires-python = ">=3.10"
dependencies = []
keywords = ["kubernetes", "metrics", "kubelet", "monitoring", "prometheus"]
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
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["resmetrics"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
