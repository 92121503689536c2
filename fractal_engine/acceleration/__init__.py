"""Frame kernels and parallel tile rendering."""
