# Utils package init
"""
Omnivore API - Pure helpers
===========================

    - urls.py:      URL classification, normalization, remote validation
    - filenames.py: title / storage file name / slug derivation
    - helpers.py:   id validation, stable hashing, date parsing

Nothing in here touches the database or the network.
"""
