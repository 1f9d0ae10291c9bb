from setuptools import setup, find_packages
from pathlib import Path
from runpy import run_path

HERE = Path(__file__).resolve().parent

verstr = run_path(str(HERE / "dotblast" / "__version__.py"))["__version__"]

install_requires = [
    "numpy>=1.21",
    "pandas>=1.3",
    "scipy>=1.7",
    "tqdm>=4.45",
    "pint>=0.10",
    "typing_extensions>=3.7.4",
]

extras_require = {
    # Faster hashing of neuron data
    "fastcore": ["xxhash"],
    # Density-based clustering
    "density": ["scikit-learn>=1.0"],
    "dev": ["pytest", "scikit-learn>=1.0"],
}

dev_only = ["dev"]
all_dev_deps = []
all_deps = []
for k, v in extras_require.items():
    all_dev_deps.extend(v)
    if k not in dev_only:
        all_deps.extend(v)

extras_require["all"] = sorted(set(all_deps))
extras_require["all-dev"] = sorted(set(all_dev_deps))

with open(HERE / "README.md") as f:
    long_description = f.read()

setup(
    name='dotblast',
    version=verstr,
    packages=find_packages(include=["dotblast", "dotblast.*"]),
    license='GNU GPL V3',
    description='NBLAST neuron similarity search and clustering',
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords='Neuron Morphology Similarity NBLAST Dotprops Clustering Neuroscience',
    classifiers=[
        'Development Status :: 3 - Alpha',

        'Intended Audience :: Science/Research',
        'Topic :: Scientific/Engineering :: Bio-Informatics',

        'License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)',

        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
    ],
    install_requires=install_requires,
    extras_require=extras_require,
    python_requires='>=3.9,<4.0',
    zip_safe=False,

    include_package_data=True

)
