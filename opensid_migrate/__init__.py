"""
OpenSID Migration Toolkit

Moves village registry data from the legacy OpenSID MySQL database into the
new PostgreSQL schema, with a backup and restore safety net around the run.

Supports:
- Dependency-ordered, batched migration of roles, users, settings, families and citizens
- Natural-key upserts so interrupted runs can simply be re-run
- pg_dump backups with SHA-256 verification before restore
- Pre- and post-migration data-integrity checks
"""

__version__ = "0.1.0"
