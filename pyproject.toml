[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tcppc"
version = "0.4.0"
description = "TCP, TLS and UDP listener that completes handshakes and records session payloads as JSON lines"
requires-python = ">=3.11"
dependencies = []
keywords = ["honeypot", "tcp", "tls", "udp", "network", "monitoring", "transparent-proxy", "tproxy"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Monitoring",
    "Topic :: Security",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
tcppc = "tcppc.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["tcppc"]

[tool.pytest.ini_options]
addopts = "-ra"
