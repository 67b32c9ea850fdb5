"""
Plate Sync package.

This package contains the camera-to-database sync service that:
- asks each configured camera for plate detections since the last stored one
- decodes the camera's XML answer into DetectionEvent records
- skips events that are already stored (dedup by picture name)
- inserts the rest into the camera's own table, every N minutes
"""
