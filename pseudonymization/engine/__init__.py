# pseudonymization/engine/__init__.py

"""HOCR encoding, annotation decoding, and substitution engines.

The modules in this package are pure in-memory transforms; network
collaborators live in ``pseudonymization.service``.
"""
