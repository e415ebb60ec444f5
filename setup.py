from setuptools import setup, find_packages

setup(
    name="edgeprobe",
    version="1.0.0",
    description="Configuration-driven DoS, WAF, bot and API protection probe engine",
    packages=find_packages(include=["edgeprobe", "edgeprobe.*"]),
    install_requires=[
        "requests",
        "pyyaml",
        "colorama",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "edgeprobe=edgeprobe.cli:main",
        ],
    },
    python_requires=">=3.8",
)
