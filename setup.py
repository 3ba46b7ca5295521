from setuptools import find_packages, setup

setup(
    name='sensorhub',
    version='1.0.0',
    description='Persistent MQTT client for a home-security sensor network',
    author='sensorhub developers',
    author_email='',
    packages=find_packages(include=['sensorhub', 'sensorhub.*']),
    python_requires='>=3.11',
    install_requires=[
        'aiomqtt>=2.0',
        'paho-mqtt>=2.0',
        'msgspec',
        'marshmallow>=3.13',
        'transitions',
        'tenacity',
        'cryptography>=39.0',
        'prometheus_client',
        'uvloop',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    entry_points={
        'console_scripts': [
            'sensorhub=sensorhub.daemon:main',
            'sensorhub-command=sensorhub.tools.send_command:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
