from setuptools import setup

setup(
    name="shaderpp",
    version="0.1.0",
    description="Shader source preprocessor with #include, #for loops and dictionary substitution",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    packages=['shaderpp'],
    python_requires=">=3.8",
    install_requires=[
        "watchdog",
        "pyyaml",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        'console_scripts': [
            'shaderpp=shaderpp.__main__:main',
        ],
    },
)
