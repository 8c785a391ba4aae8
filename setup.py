#!/usr/bin/env python
from setuptools import setup

setup(name='linkdedup',
      version='1.0',
      description='Find files with identical content and replace the duplicates with hard links',
      author='Chad Netzer',
      author_email='chad.netzer+hardlinkable@gmail.com',
      py_modules=["linkdedup"],
      python_requires=">=3.5",
      test_suite="tests",
      entry_points={
          'console_scripts': ['linkdedup=linkdedup:main']
      },
      classifiers=[
          "License :: OSI Approved :: GNU General Public License v2 or later (GPLv2+)",
          "Programming Language :: Python :: 3",
          "Operating System :: POSIX",
          "Operating System :: MacOS",
          "Operating System :: MacOS :: MacOS X",
          "Operating System :: Unix",
      ],
)
