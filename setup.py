from setuptools import find_packages, setup


install_requires = (
    "aiohttp>=3.9",
    "aiohttp-apispec>=3.0.0b2",
    "lark>=1.1.9",
    "marshmallow>=3.20,<4",
    "neuro-logging>=21.8.4.1",
    "pydantic>=2.5",
    "pydantic-settings>=2.1",
    "uvloop>=0.19",
)

extras_require = {
    "dev": (
        "pytest>=8",
        "pytest-asyncio>=0.23",
        "yarl>=1.9",
    ),
}

setup(
    name="promql_metrics",
    version="1.0.0",
    description="Extracts metric names referenced by PromQL expressions",
    packages=find_packages("src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "promql-metrics-api=promql_metrics.api:run_api",
        ]
    },
    zip_safe=False,
)
