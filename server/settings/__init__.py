"""Main settings file.

Settings are split into components with ``django-split-settings``.
Every component can read values from the environment through
``python-decouple``.
"""

import django_stubs_ext
from split_settings.tools import include

# Monkeypatching Django, so stubs will work for all generics,
# see: https://github.com/typeddjango/django-stubs/tree/master/django_stubs_ext
django_stubs_ext.monkeypatch()

include(
    'components/common.py',
    'components/logging.py',
    'components/storages.py',
    'components/assets.py',
)
