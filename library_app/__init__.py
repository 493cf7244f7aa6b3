"""Library management system of record and its legacy catalogue migration."""
