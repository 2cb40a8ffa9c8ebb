from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="queue-monitor-autoscaler",
    version="0.1.0",
    description="Queue-depth-driven worker autoscaler for RabbitMQ and Redis backed task workers",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["monitor_service"],
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
    install_requires=[
        "pika>=1.3.0",
        "redis>=4.5.0",
        "boto3>=1.26.0",
        "botocore>=1.29.0",
        "retry>=0.9.2",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "queue-monitor=queue_monitor.main:main",
        ],
    },
)
