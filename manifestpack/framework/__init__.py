"""Package manifest generation framework.

- `collector`: classify input manifests into a read-only `ManifestSet`
- `bases`: locate and load a ClusterServiceVersion base
- `descriptor`: merge manifests and a seed into the final ClusterServiceVersion
- `package_index`: upsert channels in the package record
- `writers`: stream and directory output
"""
