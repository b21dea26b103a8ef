from setuptools import find_packages, setup

README = ""
CHANGES = ""

requires = [
    "fastapi",
    "starlette",
    "anyio",
    "uvicorn",
    "pydantic",
    "pymongo",
    "msgpack",
    "vtjson",
]

tests_require = [
    "httpx",
    "pytest",
]

setup(
    name="dragalia-api",
    version="0.1",
    description="dragalia-api",
    long_description=README + "\n\n" + CHANGES,
    classifiers=[
        "Programming Language :: Python",
        "Framework :: FastAPI",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    ],
    author="",
    author_email="",
    url="",
    keywords="web fastapi msgpack game",
    packages=find_packages(include=["dragalia", "dragalia.*"]),
    include_package_data=True,
    zip_safe=False,
    python_requires=">=3.12",
    install_requires=requires,
    extras_require={"test": tests_require},
)
