"""Remote image-edit client."""
