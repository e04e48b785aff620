# torchproj setuptools configuration
from setuptools import find_packages, setup

setup(
    name="torchproj",
    version="0.1.0",
    description="FITS WCS spherical map projections for PyTorch",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.9",
    install_requires=["torch>=2.0"],
    extras_require={
        "test": ["pytest", "numpy", "astropy"],
    },
)
