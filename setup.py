import setuptools

setuptools.setup(
    name="m32fw",
    version="1.0.0",
    author="The m32fw contributors",
    description=("Recovery and factory image conversion for D-Link M30, M32, "
                 "R32 and M60 mesh routers"),
    license="Apache Software License",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        'cryptography>=2.4.2',
        'intelhex>=2.2.1',
        'click',
        'PyYAML>=5.1',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        "console_scripts": [
            "m32-firmware-util=m32fw.main:m32_firmware_util",
            "m32-firmware-info=m32fw.main:dumpinfo",
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Development Status :: 4 - Beta",
        "Topic :: Software Development :: Build Tools",
        "License :: OSI Approved :: Apache Software License",
    ],
)
