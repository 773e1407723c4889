from setuptools import find_packages, setup


install_requires = (
    "aiohttp>=3.9.0",
    "pydantic>=2.0",
    "uvloop>=0.18.0",
    "neuro-logging>=21.8.4.1",
    "sentry-sdk>=1.4.0",
)

tests_require = (
    "pytest>=7.0",
    "pytest-asyncio>=0.24",
    "jsonpatch>=1.33",
)

setup(
    name="platform-secrets-webhook",
    version="1.0.0",
    packages=find_packages("src"),
    package_dir={"": "src"},
    install_requires=install_requires,
    extras_require={"dev": tests_require},
    python_requires=">=3.10",
    entry_points={
        "console_scripts": (
            "platform-secrets-webhook="
            "platform_secrets_webhook.admission_controller.__main__:main"
        )
    },
)
