"""Setup script for config-sync package"""

from setuptools import setup, find_packages

setup(
    name="config-sync",
    version="0.1.0",
    description="Keeps process configuration in sync with a ZooKeeper-backed configuration server",
    long_description="Watches remote configuration resources, computes the keys that changed and redelivers resolved values to bound consumers without a restart",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.8",
    install_requires=[
        "pyyaml>=5.0.0",
        "kazoo>=2.9.0",
        "httpx>=0.24.0",
    ],
    extras_require={
        "dev": ["pytest>=6.0", "pytest-cov", "black", "flake8"],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Topic :: System :: Systems Administration",
        "Topic :: Software Development :: Libraries :: Application Frameworks",
    ],
)
