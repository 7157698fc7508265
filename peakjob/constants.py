DEFAULT_SERVER = "peakinvestigator.veritomyx.com"
API_PATH = "/api/"
API_VERSION = "4.0"

# MD5 fingerprint of the transfer host's SSH key
HOST_FINGERPRINT = "D2:BE:B8:2E:3C:BE:84:E4:A3:0A:C8:42:5C:6B:39:4E"

SOFTWARE_NAME = "PeakInvestigator"

META_JOB = "peakjob:job"
META_VERSION = "peakjob:version"

# Version and RTO preferences
VERSION_CURRENT = "current"
VERSION_LAST = "last"
ASK = "ask"

SCANS_SUFFIX = ".scans.tar.gz"
CALIB_SUFFIX = ".calib.tar.gz"

RECORD_ENTRY_FMT = "record{index:05d}.txt"
RECORD_ENTRY_RE = r"record(\d+)\.txt$"
RESULT_ENTRY_RE = r"record(\d+)\.mass_list\.txt$"

# Error codes
ERROR_PARSE = -1
ERROR_AUTHENTICATION = 3
