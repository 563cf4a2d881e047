from setuptools import setup, find_packages

setup(
    name="rentpanel",
    version="0.1.0",
    packages=find_packages(exclude=["tests"]),
    install_requires=[
        "pandas",
        "numpy",
        "linearmodels",
        "statsmodels",
        "scipy",
        "tabulate"
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["rentpanel=rentpanel.cli:main"],
    },
    author="medaminefh",
    description="Pooled, fixed effects and random effects regressions and diagnostics for city rent panels.",
)
