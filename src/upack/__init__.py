"""Universal package support.

- identity.py: group/name/version validation
- metadata.py: metadata variant, merging and JSON serialization
- masks.py: include/exclude masking over a directory tree
- archive.py: archive writer and reader
- builder.py: build a package from a directory
- local_registry.py: locked registry of installed packages
- installer.py: download, extract and record a package
"""
