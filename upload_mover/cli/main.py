"""
Upload Mover CLI - entry point.

Operations:
    upload-mover run                  # Move every pending upload once
    upload-mover run --keep-source    # Copy without deleting staged objects
    upload-mover region BUCKET...     # Show the region a bucket resolves to
    upload-mover requeue M U1 U2      # Mark files Imported again

This creates the 'upload-mover' command via entry point in pyproject.toml.
"""

from upload_mover.cli.app import cli


def main():
    """Main entry point for the upload-mover CLI."""
    cli()


if __name__ == "__main__":
    main()
