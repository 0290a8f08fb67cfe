from setuptools import setup, find_namespace_packages

# Read requirements.txt
with open('requirements.txt') as f:
    requirements = [
        line.strip()
        for line in f
        if line.strip() and not line.startswith('#')
    ]

setup(
    name="match_statistics",
    version="0.1.0",
    packages=find_namespace_packages(where="src", include=["match_statistics*"]),
    package_dir={"": "src"},
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-mock>=3.10",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "match-statistics=match_statistics.executables.run_aggregator:main",
        ],
    },
    python_requires=">=3.8",
)
