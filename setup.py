#!/usr/bin/env python
# fmt: off

import os
from pathlib import Path

from setuptools import find_namespace_packages, setup


project_dir = Path(__file__).absolute().parent
os.chdir(project_dir)


namespace = "affinereg"

long_description = Path("README.md").read_text()

packages = find_namespace_packages(where="src", include=[namespace, f"{namespace}.*"])
package_dir={"": "src"}

install_requires = [
    "dacite",
    "numpy",
    "pyyaml",
    "scipy",
    "torch>=1.9",
]

extras_require = {
    "dev": [
        "black",
        "flake8",
        "flake8-black",
        "pytest",
    ],
}
extras_require["all"] = extras_require["dev"]


setup(
    name="affinereg",
    version="0.1.0",
    description="Gradient descent updates of 3D affine transformations for image registration.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="Apache License 2.0",
    classifiers=[
        "Development Status :: 2 - Pre-Alpha",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3 :: Only",
        "Topic :: Scientific/Engineering :: Image Processing",
        "Typing :: Typed",
    ],
    packages=packages,
    package_dir=package_dir,
    python_requires=">=3.7",
    install_requires=install_requires,
    extras_require=extras_require,
)
