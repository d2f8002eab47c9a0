from setuptools import find_packages, setup

setup(
    name="mashcor",
    version="0.1.0",
    description="Null correlation estimation for multivariate adaptive shrinkage (mash)",
    packages=find_packages(include=["mashcor", "mashcor.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.22",
        "scipy>=1.8",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["mashcor=mashcor.cli:main"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "Intended Audience :: Science/Research",
    ],
)
