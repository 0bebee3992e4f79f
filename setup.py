from setuptools import setup

install_requires = [
    "numpy>=1.20",
    "dask[array]>=2021.03.0",
    "boost-histogram>=1.3.2",
]

extras_require = {
    "test": ["pytest"],
    "docs": [
        "sphinx>=4.0.0",
        "dask-sphinx-theme>=2.0.0",
        "autodocsumm",
    ],
}

extras_require["complete"] = sorted(set(sum(extras_require.values(), [])))

setup(
    name="nhist",
    version="0.1.0",
    description="Multi-dimensional histograms with pluggable axes and storages",
    package_dir={"": "src"},
    packages=["nhist"],
    python_requires=">=3.8",
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={"dask.sizeof": ["nhist = nhist.sizeof:register"]},
)
