"""
TPCx-BB table definitions and registration.

All 23 TPCx-BB tables are registered as Spark temp views so the queries can
refer to them by name. Surrogate keys are LongType, money columns DoubleType,
and dates are kept as the 'yyyy-MM-dd' strings the data generator emits.

Text input is '|'-delimited without a header, one directory (or file) per
table under the base path: <base>/<table>.
"""
import logging
from typing import Callable, Dict, List, Tuple

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql.types import (
    DataType,
    DoubleType,
    IntegerType,
    LongType,
    StringType,
    StructField,
    StructType,
)

from .exceptions import InvalidFormatError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("parquet", "csv", "orc")

_long = LongType()
_int = IntegerType()
_str = StringType()
_dbl = DoubleType()


def _schema(fields: List[Tuple[str, DataType]]) -> StructType:
    return StructType([StructField(name, dtype, True) for name, dtype in fields])


TPCXBB_SCHEMAS: Dict[str, StructType] = {
    "customer": _schema([
        ("c_customer_sk", _long),
        ("c_customer_id", _str),
        ("c_current_cdemo_sk", _long),
        ("c_current_hdemo_sk", _long),
        ("c_current_addr_sk", _long),
        ("c_first_shipto_date_sk", _long),
        ("c_first_sales_date_sk", _long),
        ("c_salutation", _str),
        ("c_first_name", _str),
        ("c_last_name", _str),
        ("c_preferred_cust_flag", _str),
        ("c_birth_day", _int),
        ("c_birth_month", _int),
        ("c_birth_year", _int),
        ("c_birth_country", _str),
        ("c_login", _str),
        ("c_email_address", _str),
        ("c_last_review_date", _str),
    ]),

    "customer_address": _schema([
        ("ca_address_sk", _long),
        ("ca_address_id", _str),
        ("ca_street_number", _str),
        ("ca_street_name", _str),
        ("ca_street_type", _str),
        ("ca_suite_number", _str),
        ("ca_city", _str),
        ("ca_county", _str),
        ("ca_state", _str),
        ("ca_zip", _str),
        ("ca_country", _str),
        ("ca_gmt_offset", _dbl),
        ("ca_location_type", _str),
    ]),

    "customer_demographics": _schema([
        ("cd_demo_sk", _long),
        ("cd_gender", _str),
        ("cd_marital_status", _str),
        ("cd_education_status", _str),
        ("cd_purchase_estimate", _int),
        ("cd_credit_rating", _str),
        ("cd_dep_count", _int),
        ("cd_dep_employed_count", _int),
        ("cd_dep_college_count", _int),
    ]),

    "date_dim": _schema([
        ("d_date_sk", _long),
        ("d_date_id", _str),
        ("d_date", _str),
        ("d_month_seq", _int),
        ("d_week_seq", _int),
        ("d_quarter_seq", _int),
        ("d_year", _int),
        ("d_dow", _int),
        ("d_moy", _int),
        ("d_dom", _int),
        ("d_qoy", _int),
        ("d_fy_year", _int),
        ("d_fy_quarter_seq", _int),
        ("d_fy_week_seq", _int),
        ("d_day_name", _str),
        ("d_quarter_name", _str),
        ("d_holiday", _str),
        ("d_weekend", _str),
        ("d_following_holiday", _str),
        ("d_first_dom", _int),
        ("d_last_dom", _int),
        ("d_same_day_ly", _int),
        ("d_same_day_lq", _int),
        ("d_current_day", _str),
        ("d_current_week", _str),
        ("d_current_month", _str),
        ("d_current_quarter", _str),
        ("d_current_year", _str),
    ]),

    "household_demographics": _schema([
        ("hd_demo_sk", _long),
        ("hd_income_band_sk", _long),
        ("hd_buy_potential", _str),
        ("hd_dep_count", _int),
        ("hd_vehicle_count", _int),
    ]),

    "income_band": _schema([
        ("ib_income_band_sk", _long),
        ("ib_lower_bound", _int),
        ("ib_upper_bound", _int),
    ]),

    "inventory": _schema([
        ("inv_date_sk", _long),
        ("inv_item_sk", _long),
        ("inv_warehouse_sk", _long),
        ("inv_quantity_on_hand", _int),
    ]),

    "item": _schema([
        ("i_item_sk", _long),
        ("i_item_id", _str),
        ("i_rec_start_date", _str),
        ("i_rec_end_date", _str),
        ("i_item_desc", _str),
        ("i_current_price", _dbl),
        ("i_wholesale_cost", _dbl),
        ("i_brand_id", _int),
        ("i_brand", _str),
        ("i_class_id", _int),
        ("i_class", _str),
        ("i_category_id", _int),
        ("i_category", _str),
        ("i_manufact_id", _int),
        ("i_manufact", _str),
        ("i_size", _str),
        ("i_formulation", _str),
        ("i_color", _str),
        ("i_units", _str),
        ("i_container", _str),
        ("i_manager_id", _int),
        ("i_product_name", _str),
    ]),

    "item_marketprices": _schema([
        ("imp_sk", _long),
        ("imp_item_sk", _long),
        ("imp_competitor", _str),
        ("imp_competitor_price", _dbl),
        ("imp_start_date", _long),
        ("imp_end_date", _long),
    ]),

    "product_reviews": _schema([
        ("pr_review_sk", _long),
        ("pr_review_date", _str),
        ("pr_review_time", _str),
        ("pr_review_rating", _int),
        ("pr_item_sk", _long),
        ("pr_user_sk", _long),
        ("pr_order_sk", _long),
        ("pr_review_content", _str),
    ]),

    "promotion": _schema([
        ("p_promo_sk", _long),
        ("p_promo_id", _str),
        ("p_start_date_sk", _long),
        ("p_end_date_sk", _long),
        ("p_item_sk", _long),
        ("p_cost", _dbl),
        ("p_response_target", _int),
        ("p_promo_name", _str),
        ("p_channel_dmail", _str),
        ("p_channel_email", _str),
        ("p_channel_catalog", _str),
        ("p_channel_tv", _str),
        ("p_channel_radio", _str),
        ("p_channel_press", _str),
        ("p_channel_event", _str),
        ("p_channel_demo", _str),
        ("p_channel_details", _str),
        ("p_purpose", _str),
        ("p_discount_active", _str),
    ]),

    "reason": _schema([
        ("r_reason_sk", _long),
        ("r_reason_id", _str),
        ("r_reason_desc", _str),
    ]),

    "ship_mode": _schema([
        ("sm_ship_mode_sk", _long),
        ("sm_ship_mode_id", _str),
        ("sm_type", _str),
        ("sm_code", _str),
        ("sm_carrier", _str),
        ("sm_contract", _str),
    ]),

    "store": _schema([
        ("s_store_sk", _long),
        ("s_store_id", _str),
        ("s_rec_start_date", _str),
        ("s_rec_end_date", _str),
        ("s_closed_date_sk", _long),
        ("s_store_name", _str),
        ("s_number_employees", _int),
        ("s_floor_space", _int),
        ("s_hours", _str),
        ("s_manager", _str),
        ("s_market_id", _int),
        ("s_geography_class", _str),
        ("s_market_desc", _str),
        ("s_market_manager", _str),
        ("s_division_id", _int),
        ("s_division_name", _str),
        ("s_company_id", _int),
        ("s_company_name", _str),
        ("s_street_number", _str),
        ("s_street_name", _str),
        ("s_street_type", _str),
        ("s_suite_number", _str),
        ("s_city", _str),
        ("s_county", _str),
        ("s_state", _str),
        ("s_zip", _str),
        ("s_country", _str),
        ("s_gmt_offset", _dbl),
        ("s_tax_precentage", _dbl),
    ]),

    "store_returns": _schema([
        ("sr_returned_date_sk", _long),
        ("sr_return_time_sk", _long),
        ("sr_item_sk", _long),
        ("sr_customer_sk", _long),
        ("sr_cdemo_sk", _long),
        ("sr_hdemo_sk", _long),
        ("sr_addr_sk", _long),
        ("sr_store_sk", _long),
        ("sr_reason_sk", _long),
        ("sr_ticket_number", _long),
        ("sr_return_quantity", _int),
        ("sr_return_amt", _dbl),
        ("sr_return_tax", _dbl),
        ("sr_return_amt_inc_tax", _dbl),
        ("sr_fee", _dbl),
        ("sr_return_ship_cost", _dbl),
        ("sr_refunded_cash", _dbl),
        ("sr_reversed_charge", _dbl),
        ("sr_store_credit", _dbl),
        ("sr_net_loss", _dbl),
    ]),

    "store_sales": _schema([
        ("ss_sold_date_sk", _long),
        ("ss_sold_time_sk", _long),
        ("ss_item_sk", _long),
        ("ss_customer_sk", _long),
        ("ss_cdemo_sk", _long),
        ("ss_hdemo_sk", _long),
        ("ss_addr_sk", _long),
        ("ss_store_sk", _long),
        ("ss_promo_sk", _long),
        ("ss_ticket_number", _long),
        ("ss_quantity", _int),
        ("ss_wholesale_cost", _dbl),
        ("ss_list_price", _dbl),
        ("ss_sales_price", _dbl),
        ("ss_ext_discount_amt", _dbl),
        ("ss_ext_sales_price", _dbl),
        ("ss_ext_wholesale_cost", _dbl),
        ("ss_ext_list_price", _dbl),
        ("ss_ext_tax", _dbl),
        ("ss_coupon_amt", _dbl),
        ("ss_net_paid", _dbl),
        ("ss_net_paid_inc_tax", _dbl),
        ("ss_net_profit", _dbl),
    ]),

    "time_dim": _schema([
        ("t_time_sk", _long),
        ("t_time_id", _str),
        ("t_time", _int),
        ("t_hour", _int),
        ("t_minute", _int),
        ("t_second", _int),
        ("t_am_pm", _str),
        ("t_shift", _str),
        ("t_sub_shift", _str),
        ("t_meal_time", _str),
    ]),

    "warehouse": _schema([
        ("w_warehouse_sk", _long),
        ("w_warehouse_id", _str),
        ("w_warehouse_name", _str),
        ("w_warehouse_sq_ft", _int),
        ("w_street_number", _str),
        ("w_street_name", _str),
        ("w_street_type", _str),
        ("w_suite_number", _str),
        ("w_city", _str),
        ("w_county", _str),
        ("w_state", _str),
        ("w_zip", _str),
        ("w_country", _str),
        ("w_gmt_offset", _dbl),
    ]),

    "web_clickstreams": _schema([
        ("wcs_click_date_sk", _long),
        ("wcs_click_time_sk", _long),
        ("wcs_sales_sk", _long),
        ("wcs_item_sk", _long),
        ("wcs_web_page_sk", _long),
        ("wcs_user_sk", _long),
    ]),

    "web_page": _schema([
        ("wp_web_page_sk", _long),
        ("wp_web_page_id", _str),
        ("wp_rec_start_date", _str),
        ("wp_rec_end_date", _str),
        ("wp_creation_date_sk", _long),
        ("wp_access_date_sk", _long),
        ("wp_autogen_flag", _str),
        ("wp_customer_sk", _long),
        ("wp_url", _str),
        ("wp_type", _str),
        ("wp_char_count", _int),
        ("wp_link_count", _int),
        ("wp_image_count", _int),
        ("wp_max_ad_count", _int),
    ]),

    "web_returns": _schema([
        ("wr_returned_date_sk", _long),
        ("wr_returned_time_sk", _long),
        ("wr_item_sk", _long),
        ("wr_refunded_customer_sk", _long),
        ("wr_refunded_cdemo_sk", _long),
        ("wr_refunded_hdemo_sk", _long),
        ("wr_refunded_addr_sk", _long),
        ("wr_returning_customer_sk", _long),
        ("wr_returning_cdemo_sk", _long),
        ("wr_returning_hdemo_sk", _long),
        ("wr_returning_addr_sk", _long),
        ("wr_web_page_sk", _long),
        ("wr_reason_sk", _long),
        ("wr_order_number", _long),
        ("wr_return_quantity", _int),
        ("wr_return_amt", _dbl),
        ("wr_return_tax", _dbl),
        ("wr_return_amt_inc_tax", _dbl),
        ("wr_fee", _dbl),
        ("wr_return_ship_cost", _dbl),
        ("wr_refunded_cash", _dbl),
        ("wr_reversed_charge", _dbl),
        ("wr_account_credit", _dbl),
        ("wr_net_loss", _dbl),
    ]),

    "web_sales": _schema([
        ("ws_sold_date_sk", _long),
        ("ws_sold_time_sk", _long),
        ("ws_ship_date_sk", _long),
        ("ws_item_sk", _long),
        ("ws_bill_customer_sk", _long),
        ("ws_bill_cdemo_sk", _long),
        ("ws_bill_hdemo_sk", _long),
        ("ws_bill_addr_sk", _long),
        ("ws_ship_customer_sk", _long),
        ("ws_ship_cdemo_sk", _long),
        ("ws_ship_hdemo_sk", _long),
        ("ws_ship_addr_sk", _long),
        ("ws_web_page_sk", _long),
        ("ws_web_site_sk", _long),
        ("ws_ship_mode_sk", _long),
        ("ws_warehouse_sk", _long),
        ("ws_promo_sk", _long),
        ("ws_order_number", _long),
        ("ws_quantity", _int),
        ("ws_wholesale_cost", _dbl),
        ("ws_list_price", _dbl),
        ("ws_sales_price", _dbl),
        ("ws_ext_discount_amt", _dbl),
        ("ws_ext_sales_price", _dbl),
        ("ws_ext_wholesale_cost", _dbl),
        ("ws_ext_list_price", _dbl),
        ("ws_ext_tax", _dbl),
        ("ws_coupon_amt", _dbl),
        ("ws_ext_ship_cost", _dbl),
        ("ws_net_paid", _dbl),
        ("ws_net_paid_inc_tax", _dbl),
        ("ws_net_paid_inc_ship", _dbl),
        ("ws_net_paid_inc_ship_tax", _dbl),
        ("ws_net_profit", _dbl),
    ]),

    "web_site": _schema([
        ("web_site_sk", _long),
        ("web_site_id", _str),
        ("web_rec_start_date", _str),
        ("web_rec_end_date", _str),
        ("web_name", _str),
        ("web_open_date_sk", _long),
        ("web_close_date_sk", _long),
        ("web_class", _str),
        ("web_manager", _str),
        ("web_mkt_id", _int),
        ("web_mkt_class", _str),
        ("web_mkt_desc", _str),
        ("web_market_manager", _str),
        ("web_company_id", _int),
        ("web_company_name", _str),
        ("web_street_number", _str),
        ("web_street_name", _str),
        ("web_street_type", _str),
        ("web_suite_number", _str),
        ("web_city", _str),
        ("web_county", _str),
        ("web_state", _str),
        ("web_zip", _str),
        ("web_country", _str),
        ("web_gmt_offset", _dbl),
        ("web_tax_percentage", _dbl),
    ]),
}

TPCXBB_TABLES = list(TPCXBB_SCHEMAS.keys())


def table_path(base_path: str, table: str) -> str:
    return base_path.rstrip("/") + "/" + table


def read_csv(spark: SparkSession, path: str, schema: StructType) -> DataFrame:
    """Read a '|'-delimited, header-less TPCx-BB data file."""
    return (
        spark.read
        .option("delimiter", "|")
        .option("header", "false")
        .schema(schema)
        .csv(path)
    )


def _read_table(spark: SparkSession, base_path: str, table: str, input_format: str) -> DataFrame:
    path = table_path(base_path, table)
    if input_format == "csv":
        return read_csv(spark, path, TPCXBB_SCHEMAS[table])
    if input_format == "parquet":
        return spark.read.parquet(path)
    return spark.read.orc(path)


def _setup_all(spark: SparkSession, base_path: str, input_format: str) -> Dict[str, DataFrame]:
    tables = {}
    for table in TPCXBB_TABLES:
        logger.info("Registering table %s from %s", table, table_path(base_path, table))
        df = _read_table(spark, base_path, table, input_format)
        df.createOrReplaceTempView(table)
        tables[table] = df
    return tables


def setup_all_parquet(spark: SparkSession, base_path: str) -> Dict[str, DataFrame]:
    """Register every TPCx-BB table from Parquet files under base_path."""
    return _setup_all(spark, base_path, "parquet")


def setup_all_csv(spark: SparkSession, base_path: str) -> Dict[str, DataFrame]:
    """Register every TPCx-BB table from '|'-delimited text under base_path."""
    return _setup_all(spark, base_path, "csv")


def setup_all_orc(spark: SparkSession, base_path: str) -> Dict[str, DataFrame]:
    """Register every TPCx-BB table from ORC files under base_path."""
    return _setup_all(spark, base_path, "orc")


SETUP_FUNCTIONS: Dict[str, Callable[[SparkSession, str], Dict[str, DataFrame]]] = {
    "parquet": setup_all_parquet,
    "csv": setup_all_csv,
    "orc": setup_all_orc,
}


def normalize_format(fmt: str) -> str:
    """Lower-case a format name and check it is supported.

    Raises:
        InvalidFormatError: if fmt is empty or unknown
    """
    normalized = (fmt or "").lower()
    if normalized not in SUPPORTED_FORMATS:
        raise InvalidFormatError(fmt, SUPPORTED_FORMATS)
    return normalized


def setup_all(spark: SparkSession, base_path: str, input_format: str) -> Dict[str, DataFrame]:
    """Register every table using the reader for input_format."""
    return SETUP_FUNCTIONS[normalize_format(input_format)](spark, base_path)


def setup_empty_tables(spark: SparkSession) -> Dict[str, DataFrame]:
    """Register every table as an empty view with its TPCx-BB schema."""
    tables = {}
    for table, schema in TPCXBB_SCHEMAS.items():
        df = spark.createDataFrame([], schema)
        df.createOrReplaceTempView(table)
        tables[table] = df
    return tables


def convert(
    spark: SparkSession,
    input_path: str,
    output_path: str,
    input_format: str = "csv",
    output_format: str = "parquet",
    mode: str = "overwrite",
) -> List[str]:
    """Re-encode all tables from one file format to another.

    Args:
        spark: SparkSession
        input_path: Base path of the source tables
        output_path: Base path to write converted tables under
        input_format: Source format (csv, parquet or orc)
        output_format: Target format (csv, parquet or orc)
        mode: Spark save mode

    Returns:
        List of written table paths
    """
    input_format = normalize_format(input_format)
    output_format = normalize_format(output_format)

    written = []
    for table in TPCXBB_TABLES:
        df = _read_table(spark, input_path, table, input_format)
        target = table_path(output_path, table)
        print(f"  Converting {table} -> {target}")
        writer = df.write.mode(mode)
        if output_format == "csv":
            writer.option("delimiter", "|").csv(target)
        elif output_format == "parquet":
            writer.parquet(target)
        else:
            writer.orc(target)
        written.append(target)

    return written
