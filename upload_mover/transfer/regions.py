"""
Region resolution from the storage bucket naming convention.

Storage buckets end in a short region code, e.g. ``pennsieve-prod-storage-euw1``.
The trailing ``-`` token, lower-cased, selects the region from a static table.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RegionDescriptor:
    """AWS region as referenced by a bucket short code."""

    full_name: str
    region_code: str


# Regions as of Feb 2025
REGIONS: dict[str, RegionDescriptor] = {
    "use1": RegionDescriptor("US East (N. Virginia)", "us-east-1"),
    "use2": RegionDescriptor("US East (Ohio)", "us-east-2"),
    "usw1": RegionDescriptor("US West (N. California)", "us-west-1"),
    "usw2": RegionDescriptor("US West (Oregon)", "us-west-2"),
    "afs1": RegionDescriptor("Africa (Cape Town)", "af-south-1"),
    "ape1": RegionDescriptor("Asia Pacific (Hong Kong)", "ap-east-1"),
    "aps2": RegionDescriptor("Asia Pacific (Hyderabad)", "ap-south-2"),
    "apse3": RegionDescriptor("Asia Pacific (Jakarta)", "ap-southeast-3"),
    "apse5": RegionDescriptor("Asia Pacific (Malaysia)", "ap-southeast-5"),
    "apse4": RegionDescriptor("Asia Pacific (Melbourne)", "ap-southeast-4"),
    "aps1": RegionDescriptor("Asia Pacific (Mumbai)", "ap-south-1"),
    "apne3": RegionDescriptor("Asia Pacific (Osaka)", "ap-northeast-3"),
    "apne2": RegionDescriptor("Asia Pacific (Seoul)", "ap-northeast-2"),
    "apse1": RegionDescriptor("Asia Pacific (Singapore)", "ap-southeast-1"),
    "apse2": RegionDescriptor("Asia Pacific (Sydney)", "ap-southeast-2"),
    "apse7": RegionDescriptor("Asia Pacific (Thailand)", "ap-southeast-7"),
    "apne1": RegionDescriptor("Asia Pacific (Tokyo)", "ap-northeast-1"),
    "cac1": RegionDescriptor("Canada (Central)", "ca-central-1"),
    "caw1": RegionDescriptor("Canada West (Calgary)", "ca-west-1"),
    "euc1": RegionDescriptor("Europe (Frankfurt)", "eu-central-1"),
    "euw1": RegionDescriptor("Europe (Ireland)", "eu-west-1"),
    "euw2": RegionDescriptor("Europe (London)", "eu-west-2"),
    "eus1": RegionDescriptor("Europe (Milan)", "eu-south-1"),
    "euw3": RegionDescriptor("Europe (Paris)", "eu-west-3"),
    "eus2": RegionDescriptor("Europe (Spain)", "eu-south-2"),
    "eun1": RegionDescriptor("Europe (Stockholm)", "eu-north-1"),
    "euc2": RegionDescriptor("Europe (Zurich)", "eu-central-2"),
    "ilc1": RegionDescriptor("Israel (Tel Aviv)", "il-central-1"),
    "mxc1": RegionDescriptor("Mexico (Central)", "mx-central-1"),
    "mes1": RegionDescriptor("Middle East (Bahrain)", "me-south-1"),
    "mec1": RegionDescriptor("Middle East (UAE)", "me-central-1"),
    "sae1": RegionDescriptor("South America (São Paulo)", "sa-east-1"),
    "usge1": RegionDescriptor("AWS GovCloud (US-East)", "us-gov-east-1"),
    "usgw1": RegionDescriptor("AWS GovCloud (US-West)", "us-gov-west-1"),
}


def region_short_code(bucket_name: str) -> str:
    """Trailing ``-`` token of a bucket name, lower-cased."""
    return bucket_name.split("-")[-1].lower()


def resolve_region(bucket_name: str) -> tuple[RegionDescriptor | None, bool]:
    """
    Resolve the region a storage bucket lives in.

    Args:
        bucket_name: Bucket following the ``<name>-<shortcode>`` convention

    Returns:
        (descriptor, True) when the short code is known, (None, False) otherwise
    """
    region = REGIONS.get(region_short_code(bucket_name))
    return region, region is not None
