ORDERS_REPORT_TYPE = "GET_FLAT_FILE_ALL_ORDERS_DATA_BY_ORDER_DATE_GENERAL"

REPORTS_API_VERSION = "2021-06-30"
FBA_INVENTORY_API_VERSION = "v1"

MARKETPLACE_IDS: dict[str, str] = {
    "US": "ATVPDKIKX0DER",
    "CA": "A2EUQ1WTGCTBG2",
    "UK": "A1F83G8C2ARO7P",
    "DE": "A1PA6795UKMFR9",
    "FR": "A13V1IB3VIYZZH",
    "IT": "APJ6JRA9NG5V4",
    "ES": "A1RKKUPIHCS9HS",
    "AU": "A39IBJ37TRP1C6",
    "AE": "A2VIGQ35RCS4UG",
    "SA": "A17E79C6D8DWNP",
}

# 리포트의 sales-channel 값 -> 내부 채널 코드
# AE/SA 처럼 하나의 리포트를 공유하는 마켓은 행 단위로 채널을 판별한다
SALES_CHANNEL_TO_CHANNEL: dict[str, str] = {
    "Amazon.com": "us",
    "Amazon.ca": "ca",
    "Amazon.co.uk": "uk",
    "Amazon.de": "de",
    "Amazon.fr": "fr",
    "Amazon.it": "it",
    "Amazon.es": "es",
    "Amazon.com.au": "au",
    "Amazon.ae": "ae",
    "Amazon.sa": "sa",
}

# 고정 UTC 오프셋 (시간). DST는 반영하지 않는다
CHANNEL_TIMEZONE_OFFSETS: dict[str, float] = {
    "us": -8,
    "ca": -8,
    "uk": 0,
    "de": 1,
    "fr": 1,
    "it": 1,
    "es": 1,
    "au": 10,
    "ae": 4,
    "sa": 3,
}

REPORT_DONE = "DONE"
REPORT_FAILED_STATUSES = frozenset({"CANCELLED", "FATAL"})
