#!/usr/bin/env python

import setuptools
import groupby

setup = {
    'name': 'groupby',
    'version': groupby.VERSION,
    'description': "Group input tokens by common substrings, and run a command per group",
    'py_modules': ['groupby'],
    'python_requires': '>=3.5',
    'test_suite': 'tests',
    'entry_points': {
        'console_scripts': ['groupby=groupby:script_main'],
    },
}

setuptools.setup(**setup)
