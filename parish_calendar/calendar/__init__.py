"""Pure calendar logic: models, occurrence expansion, normalization and export."""
