"""Domain core: records, regions, tracks, selection and timing."""
