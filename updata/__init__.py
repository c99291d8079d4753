"""
updata CLI - Command-line interface for editing update manifests.

Each command loads a manifest file, performs one operation on it and
writes it back.

Commands:
- init: Create an empty manifest
- add-update / remove-update: Manage update records
- add-wave / remove-wave: Manage rollout waves
- add-version-mapping: Map an image version to a datastore version
- set-max-version: Raise the version ceiling
- set-migrations: Copy migrations from a release description
- validate: Check a manifest without changing it
- config: Show or change tool settings
"""
