import os

import setuptools

# Make sure that README.md decodes in environments that use the C locale
# (which implies ASCII), by explicitly giving the encoding.
with open(os.path.join(os.path.dirname(__file__), "README.md"), encoding="utf-8") as f:
    long_description = f.read()


setuptools.setup(
    name="kilo",
    # MAJOR.MINOR.PATCH, per http://semver.org
    version="0.1.0",
    description="Raw terminal bootstrap for a small text editor",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Kilo contributors",
    keywords="editor, terminal, termios, raw-mode, vt100",
    license="ISC",
    py_modules=(
        "kilo",
        "rawterm",
    ),
    entry_points={
        "console_scripts": ("kilo = kilo:_main",)
    },
    extras_require={
        "test": ("pytest",),
    },
    # termios/fcntl are Unix-only
    python_requires=">=3.6",
    classifiers=[
        "Development Status :: 2 - Pre-Alpha",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Topic :: Text Editors",
        "Topic :: Terminals",
        "License :: OSI Approved :: ISC License (ISCL)",
        "Operating System :: POSIX",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
        "Programming Language :: Python :: Implementation :: CPython",
        "Programming Language :: Python :: Implementation :: PyPy",
    ],
)
