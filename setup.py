from setuptools import setup, find_packages

setup(
    name="drift_patch",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    description="Drift detection, attribution and reversible corrective patches for production ML models.",
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
        "scikit-learn",
        "structlog",
        "sqlalchemy>=2.0",
        "prometheus-client",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
)
