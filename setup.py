from setuptools import setup, find_packages

setup(
    name="radius-eap-diagnostics",
    version="0.1.0",
    description="Live EAP/RADIUS authentication and certificate chain diagnostics",
    author="Your Name",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "scapy>=2.5.0",
        "click>=8.0.0",
        "pyyaml>=6.0",
        "jinja2>=3.0.0",
        "rich>=13.0.0",
        "cryptography>=42.0.0",
        "requests>=2.28.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "black",
            "flake8",
            "mypy",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "radius-diagnostics=radius_diagnostics.cli.main:main",
        ],
    },
    python_requires=">=3.8",
)
