"""
TPCx-BB-like Queries

The 30 TPCx-BB queries expressed for Spark, each a function taking a
SparkSession (with the tables registered as temp views) and returning a
DataFrame. Query parameters are the TPCx-BB defaults.

Queries that the benchmark kit runs through external reducer scripts are
expressed with window functions (clickstream sessionization) or the
lexicon-based sentiment extractor in text_analysis. Machine-learning
queries return the feature table the model would be trained on.
"""
import logging
from typing import Callable, Dict

from pyspark.sql import Column, DataFrame, SparkSession
from pyspark.sql import functions as F
from pyspark.sql.window import Window

from .exceptions import UnknownQueryError, UnsupportedQueryError
from .text_analysis import NEGATIVE, extract_sentiment

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
SESSION_TIMEOUT_SECONDS = 60 * 60


def click_timestamp() -> Column:
    """Seconds since the date_sk epoch for a web_clickstreams row."""
    return F.col("wcs_click_date_sk") * SECONDS_PER_DAY + F.col("wcs_click_time_sk")


def sessionize(clicks: DataFrame, timeout: int = SESSION_TIMEOUT_SECONDS) -> DataFrame:
    """Assign a session_id to every click.

    A user's session ends when the gap to their next click exceeds timeout
    seconds. clicks must have wcs_user_sk and tstamp columns.
    """
    by_user = Window.partitionBy("wcs_user_sk").orderBy("tstamp")
    running = by_user.rowsBetween(Window.unboundedPreceding, Window.currentRow)
    gap = F.col("tstamp") - F.lag("tstamp").over(by_user)
    return (
        clicks
        .withColumn("new_session", F.when(gap.isNull() | (gap > timeout), 1).otherwise(0))
        .withColumn("session_seq", F.sum("new_session").over(running))
        .withColumn(
            "session_id",
            F.concat_ws("_", F.col("wcs_user_sk").cast("string"), F.col("session_seq").cast("string")),
        )
        .drop("new_session", "session_seq")
    )


def _user_clicks(spark: SparkSession) -> DataFrame:
    return (
        spark.table("web_clickstreams")
        .filter(F.col("wcs_user_sk").isNotNull())
        .withColumn("tstamp", click_timestamp())
    )


def q1(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q1: Products frequently sold together in given stores"""
    return spark.sql("""
        WITH sold AS (
          SELECT DISTINCT ss_ticket_number, ss_item_sk
          FROM store_sales s
          JOIN item i ON s.ss_item_sk = i.i_item_sk
          WHERE i.i_category_id IN (1, 2, 3)
            AND s.ss_store_sk IN (10, 20, 33, 40, 50)
        )
        SELECT a.ss_item_sk AS item_sk_1, b.ss_item_sk AS item_sk_2, COUNT(*) AS cnt
        FROM sold a
        JOIN sold b
          ON a.ss_ticket_number = b.ss_ticket_number
         AND a.ss_item_sk < b.ss_item_sk
        GROUP BY a.ss_item_sk, b.ss_item_sk
        HAVING cnt > 50
        ORDER BY cnt DESC, item_sk_1, item_sk_2
        LIMIT 100
    """)


def q2(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q2: Products viewed together online with a given product"""
    target_item = 10001
    sessions = (
        sessionize(_user_clicks(spark).filter(F.col("wcs_item_sk").isNotNull()))
        .select("session_id", "wcs_item_sk")
        .distinct()
    )
    target_sessions = sessions.filter(F.col("wcs_item_sk") == target_item).select("session_id")
    return (
        target_sessions
        .join(sessions.filter(F.col("wcs_item_sk") != target_item), "session_id")
        .groupBy(F.col("wcs_item_sk").alias("item_sk_2"))
        .agg(F.count("*").alias("cnt"))
        .select(F.lit(target_item).cast("long").alias("item_sk_1"), "item_sk_2", "cnt")
        .orderBy(F.desc("cnt"), "item_sk_2")
        .limit(30)
    )


def q3(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q3: Last products viewed before a given product was purchased"""
    purchased_item = 10001
    views_before_purchase = 5
    window_seconds = 10 * SECONDS_PER_DAY

    clicks = _user_clicks(spark).filter(F.col("wcs_item_sk").isNotNull())
    purchases = (
        clicks
        .filter(F.col("wcs_sales_sk").isNotNull() & (F.col("wcs_item_sk") == purchased_item))
        .select("wcs_user_sk", F.col("tstamp").alias("purchase_tstamp"))
        .distinct()
    )
    views = (
        clicks
        .filter(F.col("wcs_sales_sk").isNull())
        .select("wcs_user_sk", F.col("tstamp").alias("view_tstamp"),
                F.col("wcs_item_sk").alias("lastviewed_item"))
    )
    recent = Window.partitionBy("wcs_user_sk", "purchase_tstamp").orderBy(F.desc("view_tstamp"))
    last_viewed = (
        purchases
        .join(views, "wcs_user_sk")
        .filter(
            (F.col("view_tstamp") < F.col("purchase_tstamp")) &
            (F.col("view_tstamp") >= F.col("purchase_tstamp") - window_seconds)
        )
        .withColumn("rn", F.row_number().over(recent))
        .filter(F.col("rn") <= views_before_purchase)
    )
    item = spark.table("item").filter(F.col("i_category_id").isin(2, 3))
    return (
        last_viewed
        .join(item, last_viewed["lastviewed_item"] == item["i_item_sk"])
        .groupBy("lastviewed_item")
        .agg(F.count("*").alias("cnt"))
        .select(F.lit(purchased_item).cast("long").alias("purchased_item"), "lastviewed_item", "cnt")
        .orderBy(F.desc("cnt"), "lastviewed_item")
        .limit(30)
    )


def q4(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q4: Average pages visited in abandoned shopping-cart sessions

    A session is abandoned when its last 'dynamic' page view comes after
    its last 'order' page view (or there was no order page at all).
    """
    web_page = spark.table("web_page")
    clicks = _user_clicks(spark)
    sessions = sessionize(
        clicks
        .join(web_page, clicks["wcs_web_page_sk"] == web_page["wp_web_page_sk"])
        .select("wcs_user_sk", "tstamp", "wp_type")
    )
    per_session = (
        sessions
        .groupBy("session_id")
        .agg(
            F.count("*").alias("pagecount"),
            F.max(F.when(F.col("wp_type") == "order", F.col("tstamp"))).alias("last_order"),
            F.max(F.when(F.col("wp_type") == "dynamic", F.col("tstamp"))).alias("last_dynamic"),
        )
    )
    abandoned = per_session.filter(
        F.col("last_dynamic").isNotNull() &
        (F.col("last_order").isNull() | (F.col("last_dynamic") > F.col("last_order")))
    )
    return abandoned.agg(
        (F.sum("pagecount").cast("double") / F.count("*")).alias("avg_pagecount")
    )


def q5(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q5: Logistic regression input for category clicks

    Returns the per-customer feature table (clicks per category, college
    education, gender) the model is trained on.
    """
    clicks_per_category = ",\n".join(
        f"SUM(CASE WHEN i_category_id = {i} THEN 1 ELSE 0 END) AS clicks_in_{i}"
        for i in range(1, 8)
    )
    return spark.sql(f"""
        SELECT
          c.c_customer_sk AS c_customer_sk,
          c.clicks_in_category,
          CASE WHEN cd.cd_education_status IN
               ('Advanced Degree', 'College', '4 yr Degree', '2 yr Degree')
               THEN 1 ELSE 0 END AS college_education,
          CASE WHEN cd.cd_gender = 'M' THEN 1 ELSE 0 END AS male,
          c.clicks_in_1, c.clicks_in_2, c.clicks_in_3, c.clicks_in_4,
          c.clicks_in_5, c.clicks_in_6, c.clicks_in_7
        FROM (
          SELECT
            wcs_user_sk AS c_customer_sk,
            SUM(CASE WHEN i_category = 'Books' THEN 1 ELSE 0 END) AS clicks_in_category,
            {clicks_per_category}
          FROM web_clickstreams
          JOIN item ON wcs_item_sk = i_item_sk
          WHERE wcs_user_sk IS NOT NULL
          GROUP BY wcs_user_sk
        ) c
        JOIN customer ct ON c.c_customer_sk = ct.c_customer_sk
        JOIN customer_demographics cd ON ct.c_current_cdemo_sk = cd.cd_demo_sk
        ORDER BY c.c_customer_sk
    """)


def q6(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q6: Customers shifting purchases from store to web"""
    return spark.sql("""
        WITH store_totals AS (
          SELECT
            ss_customer_sk AS customer_sk,
            SUM(CASE WHEN d_year = 2001
                THEN ((ss_ext_list_price - ss_ext_wholesale_cost - ss_ext_discount_amt)
                      + ss_ext_sales_price) / 2 ELSE 0 END) AS first_year_total,
            SUM(CASE WHEN d_year = 2002
                THEN ((ss_ext_list_price - ss_ext_wholesale_cost - ss_ext_discount_amt)
                      + ss_ext_sales_price) / 2 ELSE 0 END) AS second_year_total
          FROM store_sales
          JOIN date_dim ON ss_sold_date_sk = d_date_sk
          WHERE d_year BETWEEN 2001 AND 2002
          GROUP BY ss_customer_sk
        ),
        web_totals AS (
          SELECT
            ws_bill_customer_sk AS customer_sk,
            SUM(CASE WHEN d_year = 2001
                THEN ((ws_ext_list_price - ws_ext_wholesale_cost - ws_ext_discount_amt)
                      + ws_ext_sales_price) / 2 ELSE 0 END) AS first_year_total,
            SUM(CASE WHEN d_year = 2002
                THEN ((ws_ext_list_price - ws_ext_wholesale_cost - ws_ext_discount_amt)
                      + ws_ext_sales_price) / 2 ELSE 0 END) AS second_year_total
          FROM web_sales
          JOIN date_dim ON ws_sold_date_sk = d_date_sk
          WHERE d_year BETWEEN 2001 AND 2002
          GROUP BY ws_bill_customer_sk
        ),
        ratios AS (
          SELECT
            s.customer_sk,
            s.second_year_total / NULLIF(s.first_year_total, 0) AS store_sales_increase_ratio,
            w.second_year_total / NULLIF(w.first_year_total, 0) AS web_sales_increase_ratio
          FROM store_totals s
          JOIN web_totals w ON s.customer_sk = w.customer_sk
          WHERE s.first_year_total > 0 AND w.first_year_total > 0
        )
        SELECT
          r.web_sales_increase_ratio,
          c.c_customer_sk,
          c.c_first_name,
          c.c_last_name,
          c.c_preferred_cust_flag,
          c.c_birth_country,
          c.c_login,
          c.c_email_address
        FROM ratios r
        JOIN customer c ON r.customer_sk = c.c_customer_sk
        WHERE r.web_sales_increase_ratio > r.store_sales_increase_ratio
        ORDER BY r.web_sales_increase_ratio DESC, c.c_customer_sk,
                 c.c_first_name, c.c_last_name, c.c_preferred_cust_flag, c.c_birth_country, c.c_login
        LIMIT 100
    """)


def q7(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q7: States with customers buying items priced 20% over category average"""
    return spark.sql("""
        WITH high_price_items AS (
          SELECT i.i_item_sk
          FROM item i
          JOIN (
            SELECT i_category, AVG(i_current_price) * 1.2 AS avg_price
            FROM item
            GROUP BY i_category
          ) a ON i.i_category = a.i_category
          WHERE i.i_current_price > a.avg_price
        )
        SELECT ca_state, COUNT(*) AS cnt
        FROM customer_address a
        JOIN customer c ON a.ca_address_sk = c.c_current_addr_sk
        JOIN store_sales s ON c.c_customer_sk = s.ss_customer_sk
        JOIN high_price_items hi ON s.ss_item_sk = hi.i_item_sk
        WHERE a.ca_state IS NOT NULL
          AND s.ss_sold_date_sk IN (
            SELECT d_date_sk FROM date_dim WHERE d_year = 2004 AND d_moy = 7
          )
        GROUP BY ca_state
        HAVING cnt >= 10
        ORDER BY cnt DESC, ca_state
        LIMIT 10
    """)


def q8(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q8: Web sales with and without a prior review page view

    A sale counts as reviewed when the same user viewed a 'review' page in
    the three days before the purchase click.
    """
    seconds_before_purchase = 3 * SECONDS_PER_DAY
    dates = (
        spark.table("date_dim")
        .filter(F.col("d_date").between("2001-09-02", "2002-09-02"))
        .select("d_date_sk")
    )
    web_page = spark.table("web_page")
    clicks = _user_clicks(spark)
    clicks = (
        clicks
        .join(dates, clicks["wcs_click_date_sk"] == dates["d_date_sk"], "left_semi")
        .join(web_page, clicks["wcs_web_page_sk"] == web_page["wp_web_page_sk"])
    )
    reviews = (
        clicks
        .filter(F.col("wp_type") == "review")
        .select("wcs_user_sk", F.col("tstamp").alias("review_tstamp"))
    )
    reviewed_sales = (
        clicks
        .filter(F.col("wcs_sales_sk").isNotNull())
        .select("wcs_user_sk", "wcs_sales_sk", F.col("tstamp").alias("sale_tstamp"))
        .join(reviews, "wcs_user_sk")
        .filter(
            (F.col("review_tstamp") <= F.col("sale_tstamp")) &
            (F.col("review_tstamp") >= F.col("sale_tstamp") - seconds_before_purchase)
        )
        .select(F.col("wcs_sales_sk").alias("reviewed_order"))
        .distinct()
    )
    web_sales = spark.table("web_sales")
    sales = (
        web_sales
        .join(dates, web_sales["ws_sold_date_sk"] == dates["d_date_sk"], "left_semi")
        .join(reviewed_sales, web_sales["ws_order_number"] == reviewed_sales["reviewed_order"], "left")
    )
    reviewed = F.col("reviewed_order").isNotNull()
    return sales.agg(
        F.sum(F.when(reviewed, F.col("ws_net_paid")).otherwise(0.0)).alias("review_sales_amount"),
        F.sum(F.when(~reviewed, F.col("ws_net_paid")).otherwise(0.0)).alias("no_review_sales_amount"),
    )


def q9(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q9: Quantity sold for demographic, address and price combinations"""
    return spark.sql("""
        SELECT SUM(ss1.ss_quantity) AS total_quantity
        FROM store_sales ss1
        JOIN date_dim dd ON ss1.ss_sold_date_sk = dd.d_date_sk
        JOIN customer_address ca1 ON ss1.ss_addr_sk = ca1.ca_address_sk
        JOIN store s ON s.s_store_sk = ss1.ss_store_sk
        JOIN customer_demographics cd ON cd.cd_demo_sk = ss1.ss_cdemo_sk
        WHERE dd.d_year = 2001
          AND (
            (cd.cd_marital_status = 'M' AND cd.cd_education_status = '4 yr Degree'
             AND ss1.ss_sales_price BETWEEN 100 AND 150)
            OR (cd.cd_marital_status = 'M' AND cd.cd_education_status = '4 yr Degree'
             AND ss1.ss_sales_price BETWEEN 50 AND 200)
            OR (cd.cd_marital_status = 'M' AND cd.cd_education_status = '4 yr Degree'
             AND ss1.ss_sales_price BETWEEN 150 AND 200)
          )
          AND (
            (ca1.ca_country = 'United States' AND ca1.ca_state IN ('KY', 'GA', 'NM')
             AND ss1.ss_net_profit BETWEEN 0 AND 2000)
            OR (ca1.ca_country = 'United States' AND ca1.ca_state IN ('MT', 'OR', 'IN')
             AND ss1.ss_net_profit BETWEEN 150 AND 3000)
            OR (ca1.ca_country = 'United States' AND ca1.ca_state IN ('WI', 'MO', 'WV')
             AND ss1.ss_net_profit BETWEEN 50 AND 25000)
          )
    """)


def q10(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q10: Sentiment-bearing sentences in product reviews"""
    reviews = (
        spark.table("product_reviews")
        .filter(F.col("pr_item_sk").isNotNull() & F.col("pr_review_content").isNotNull())
        .select(F.col("pr_item_sk").alias("item_sk"), "pr_review_content")
    )
    return (
        extract_sentiment(spark, reviews, "pr_review_content", ["item_sk"])
        .orderBy("item_sk", "review_sentence", "sentiment", "sentiment_word")
    )


def q11(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q11: Correlation of review count and average rating for sold products"""
    return spark.sql("""
        SELECT corr(reviews_count, avg_rating) AS reviews_rating_corr
        FROM (
          SELECT p.pr_item_sk, p.r_count AS reviews_count, p.avg_rating, s.revenue
          FROM (
            SELECT pr_item_sk, COUNT(*) AS r_count, AVG(pr_review_rating) AS avg_rating
            FROM product_reviews
            WHERE pr_item_sk IS NOT NULL
            GROUP BY pr_item_sk
          ) p
          JOIN (
            SELECT ws_item_sk, SUM(ws_net_paid) AS revenue
            FROM web_sales
            WHERE ws_sold_date_sk IN (
              SELECT d_date_sk FROM date_dim
              WHERE d_date >= '2003-01-02' AND d_date <= '2003-02-02'
            )
            GROUP BY ws_item_sk
          ) s ON p.pr_item_sk = s.ws_item_sk
        ) q11_review_stats
    """)


def q12(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q12: Web viewers who bought in store in the same category later"""
    return spark.sql("""
        SELECT DISTINCT wcs_user_sk
        FROM (
          SELECT wcs_user_sk, wcs_click_date_sk
          FROM web_clickstreams
          JOIN item ON wcs_item_sk = i_item_sk
          WHERE wcs_click_date_sk BETWEEN 37134 AND 37134 + 30
            AND i_category IN ('Books', 'Electronics')
            AND wcs_user_sk IS NOT NULL
            AND wcs_sales_sk IS NULL
        ) web_in_range
        JOIN (
          SELECT ss_customer_sk, ss_sold_date_sk
          FROM store_sales
          JOIN item ON ss_item_sk = i_item_sk
          WHERE ss_sold_date_sk BETWEEN 37134 AND 37134 + 90
            AND i_category IN ('Books', 'Electronics')
            AND ss_customer_sk IS NOT NULL
        ) store_in_range
          ON wcs_user_sk = ss_customer_sk
        WHERE wcs_click_date_sk < ss_sold_date_sk
        ORDER BY wcs_user_sk
    """)


def q13(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q13: Customers whose web sales grew faster than store sales"""
    return spark.sql("""
        WITH store_totals AS (
          SELECT
            ss_customer_sk AS customer_sk,
            SUM(CASE WHEN d_year = 2001 THEN ss_net_paid ELSE 0 END) AS first_year_total,
            SUM(CASE WHEN d_year = 2002 THEN ss_net_paid ELSE 0 END) AS second_year_total
          FROM store_sales
          JOIN date_dim ON ss_sold_date_sk = d_date_sk
          WHERE d_year BETWEEN 2001 AND 2002
          GROUP BY ss_customer_sk
        ),
        web_totals AS (
          SELECT
            ws_bill_customer_sk AS customer_sk,
            SUM(CASE WHEN d_year = 2001 THEN ws_net_paid ELSE 0 END) AS first_year_total,
            SUM(CASE WHEN d_year = 2002 THEN ws_net_paid ELSE 0 END) AS second_year_total
          FROM web_sales
          JOIN date_dim ON ws_sold_date_sk = d_date_sk
          WHERE d_year BETWEEN 2001 AND 2002
          GROUP BY ws_bill_customer_sk
        ),
        ratios AS (
          SELECT
            s.customer_sk,
            s.second_year_total / NULLIF(s.first_year_total, 0) AS store_sales_increase_ratio,
            w.second_year_total / NULLIF(w.first_year_total, 0) AS web_sales_increase_ratio
          FROM store_totals s
          JOIN web_totals w ON s.customer_sk = w.customer_sk
          WHERE s.first_year_total > 0 AND w.first_year_total > 0
        )
        SELECT
          c.c_customer_sk,
          c.c_first_name,
          c.c_last_name,
          r.store_sales_increase_ratio,
          r.web_sales_increase_ratio
        FROM ratios r
        JOIN customer c ON r.customer_sk = c.c_customer_sk
        WHERE r.web_sales_increase_ratio > r.store_sales_increase_ratio
        ORDER BY r.web_sales_increase_ratio DESC, c.c_customer_sk, c.c_first_name, c.c_last_name
        LIMIT 100
    """)


def q14(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q14: Morning to evening web sales ratio"""
    return spark.sql("""
        SELECT
          CASE WHEN pmc > 0 THEN CAST(amc AS DOUBLE) / pmc ELSE -1.0 END AS am_pm_ratio
        FROM (
          SELECT
            SUM(CASE WHEN t_hour BETWEEN 7 AND 8 THEN 1 ELSE 0 END) AS amc,
            SUM(CASE WHEN t_hour BETWEEN 19 AND 20 THEN 1 ELSE 0 END) AS pmc
          FROM web_sales ws
          JOIN household_demographics hd
            ON hd.hd_demo_sk = ws.ws_ship_hdemo_sk AND hd.hd_dep_count = 5
          JOIN web_page wp
            ON wp.wp_web_page_sk = ws.ws_web_page_sk AND wp.wp_char_count BETWEEN 5000 AND 6000
          JOIN time_dim td
            ON td.t_time_sk = ws.ws_sold_time_sk AND td.t_hour IN (7, 8, 19, 20)
        ) sum_am_pm
    """)


def q15(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q15: Categories with flat or declining store sales"""
    return spark.sql("""
        SELECT cat, slope, intercept
        FROM (
          SELECT
            cat,
            (COUNT(x) * SUM(xy) - SUM(x) * SUM(y))
              / NULLIF(COUNT(x) * SUM(xx) - SUM(x) * SUM(x), 0) AS slope,
            (SUM(y) - ((COUNT(x) * SUM(xy) - SUM(x) * SUM(y))
              / NULLIF(COUNT(x) * SUM(xx) - SUM(x) * SUM(x), 0)) * SUM(x)) / COUNT(x) AS intercept
          FROM (
            SELECT
              i.i_category_id AS cat,
              s.ss_sold_date_sk AS x,
              SUM(s.ss_net_paid) AS y,
              s.ss_sold_date_sk * SUM(s.ss_net_paid) AS xy,
              s.ss_sold_date_sk * s.ss_sold_date_sk AS xx
            FROM store_sales s
            LEFT SEMI JOIN (
              SELECT d_date_sk FROM date_dim
              WHERE d_date >= '2001-09-02' AND d_date <= '2002-09-02'
            ) dd ON s.ss_sold_date_sk = dd.d_date_sk
            JOIN item i ON s.ss_item_sk = i.i_item_sk
            WHERE i.i_category_id IS NOT NULL
              AND s.ss_store_sk = 10
            GROUP BY i.i_category_id, s.ss_sold_date_sk
          ) temp
          GROUP BY cat
        ) regression
        WHERE slope <= 0
        ORDER BY cat
    """)


def q16(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q16: Web sales 30 days before and after a price change"""
    return spark.sql("""
        SELECT
          w_state,
          i_item_id,
          SUM(CASE WHEN datediff(d_date, '2001-03-16') < 0
              THEN ws_sales_price - COALESCE(wr_refunded_cash, 0) ELSE 0.0 END) AS sales_before,
          SUM(CASE WHEN datediff(d_date, '2001-03-16') >= 0
              THEN ws_sales_price - COALESCE(wr_refunded_cash, 0) ELSE 0.0 END) AS sales_after
        FROM web_sales ws
        LEFT JOIN web_returns wr
          ON ws.ws_order_number = wr.wr_order_number AND ws.ws_item_sk = wr.wr_item_sk
        JOIN item i ON ws.ws_item_sk = i.i_item_sk
        JOIN warehouse w ON ws.ws_warehouse_sk = w.w_warehouse_sk
        JOIN date_dim d ON ws.ws_sold_date_sk = d.d_date_sk
        WHERE datediff(d_date, '2001-03-16') BETWEEN -30 AND 30
        GROUP BY w_state, i_item_id
        ORDER BY w_state, i_item_id
        LIMIT 100
    """)


def q17(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q17: Share of promoted store sales in one time zone"""
    return spark.sql("""
        SELECT
          SUM(promotional) AS promotional,
          SUM(total) AS total,
          COALESCE(100 * SUM(promotional) / NULLIF(SUM(total), 0), 0.0) AS promo_percent
        FROM (
          SELECT
            p_channel_email,
            p_channel_dmail,
            p_channel_tv,
            CASE WHEN p_channel_dmail = 'Y' OR p_channel_email = 'Y' OR p_channel_tv = 'Y'
                 THEN SUM(ss_ext_sales_price) ELSE 0 END AS promotional,
            SUM(ss_ext_sales_price) AS total
          FROM store_sales ss
          LEFT SEMI JOIN date_dim dd
            ON ss.ss_sold_date_sk = dd.d_date_sk AND dd.d_year = 2001 AND dd.d_moy = 12
          LEFT SEMI JOIN item i
            ON ss.ss_item_sk = i.i_item_sk AND i.i_category IN ('Books', 'Music')
          LEFT SEMI JOIN store s
            ON ss.ss_store_sk = s.s_store_sk AND s.s_gmt_offset = -5
          LEFT SEMI JOIN (
            SELECT c.c_customer_sk
            FROM customer c
            LEFT SEMI JOIN customer_address ca
              ON c.c_current_addr_sk = ca.ca_address_sk AND ca.ca_gmt_offset = -5
          ) sub_c ON ss.ss_customer_sk = sub_c.c_customer_sk
          JOIN promotion p ON ss.ss_promo_sk = p.p_promo_sk
          GROUP BY p_channel_email, p_channel_dmail, p_channel_tv
        ) sum_promotional
    """)


def q18(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q18: Negative reviews mentioning stores with declining sales"""
    declining_stores = spark.sql("""
        SELECT s.s_store_name
        FROM (
          SELECT
            store_sk,
            (COUNT(x) * SUM(xy) - SUM(x) * SUM(y))
              / NULLIF(COUNT(x) * SUM(xx) - SUM(x) * SUM(x), 0) AS slope
          FROM (
            SELECT
              ss_store_sk AS store_sk,
              ss_sold_date_sk AS x,
              SUM(ss_net_paid) AS y,
              ss_sold_date_sk * SUM(ss_net_paid) AS xy,
              ss_sold_date_sk * ss_sold_date_sk AS xx
            FROM store_sales
            LEFT SEMI JOIN (
              SELECT d_date_sk FROM date_dim
              WHERE d_date >= '2001-05-02' AND d_date <= '2001-09-02'
            ) dd ON ss_sold_date_sk = dd.d_date_sk
            WHERE ss_store_sk IS NOT NULL
            GROUP BY ss_store_sk, ss_sold_date_sk
          ) temp
          GROUP BY store_sk
        ) regression
        JOIN store s ON regression.store_sk = s.s_store_sk
        WHERE slope <= 0 AND s.s_store_name IS NOT NULL
    """)
    reviews = (
        spark.table("product_reviews")
        .filter(
            F.col("pr_review_date").between("2001-05-02", "2001-09-02") &
            F.col("pr_review_content").isNotNull()
        )
    )
    mentions = (
        reviews
        .join(
            declining_stores,
            F.lower(reviews["pr_review_content"]).contains(F.lower(declining_stores["s_store_name"])),
        )
        .select(
            F.col("s_store_name").alias("s_name"),
            F.col("pr_review_date").alias("r_date"),
            "pr_review_content",
        )
    )
    return (
        extract_sentiment(
            spark, mentions, "pr_review_content", ["s_name", "r_date"],
            sentence_col="r_sentence", polarity=NEGATIVE,
        )
        .orderBy("s_name", "r_date", "r_sentence", "sentiment_word")
    )


def q19(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q19: Negative reviews for items returned equally in store and online"""
    returned_items = spark.sql("""
        WITH return_dates AS (
          SELECT d_date_sk
          FROM date_dim
          WHERE d_week_seq IN (
            SELECT d_week_seq FROM date_dim
            WHERE d_date IN ('2004-03-08', '2004-08-02', '2004-11-15', '2004-12-20')
          )
        ),
        sr AS (
          SELECT sr_item_sk AS item_sk, SUM(sr_return_quantity) AS sr_item_qty
          FROM store_returns
          LEFT SEMI JOIN return_dates ON sr_returned_date_sk = d_date_sk
          WHERE sr_item_sk IS NOT NULL
          GROUP BY sr_item_sk
        ),
        wr AS (
          SELECT wr_item_sk AS item_sk, SUM(wr_return_quantity) AS wr_item_qty
          FROM web_returns
          LEFT SEMI JOIN return_dates ON wr_returned_date_sk = d_date_sk
          WHERE wr_item_sk IS NOT NULL
          GROUP BY wr_item_sk
        )
        SELECT sr.item_sk
        FROM sr
        JOIN wr ON sr.item_sk = wr.item_sk
        WHERE sr_item_qty + wr_item_qty > 0
          AND sr_item_qty / ((sr_item_qty + wr_item_qty) / 2.0) BETWEEN 0.9 AND 1.1
          AND wr_item_qty / ((sr_item_qty + wr_item_qty) / 2.0) BETWEEN 0.9 AND 1.1
    """)
    reviews = (
        spark.table("product_reviews")
        .filter(F.col("pr_review_content").isNotNull())
        .join(returned_items, F.col("pr_item_sk") == returned_items["item_sk"])
        .select("item_sk", "pr_review_content")
    )
    return (
        extract_sentiment(spark, reviews, "pr_review_content", ["item_sk"], polarity=NEGATIVE)
        .orderBy("item_sk", "review_sentence", "sentiment", "sentiment_word")
    )


def q20(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q20: Customer segmentation features for return behaviour"""
    return spark.sql("""
        SELECT
          ss_customer_sk AS user_sk,
          round(COALESCE(returns_count / NULLIF(orders_count, 0), 0.0), 7) AS orderRatio,
          round(COALESCE(returns_items / NULLIF(orders_items, 0), 0.0), 7) AS itemsRatio,
          round(COALESCE(returns_money / NULLIF(orders_money, 0), 0.0), 7) AS monetaryRatio,
          round(COALESCE(returns_count, 0), 0) AS frequency
        FROM (
          SELECT
            ss_customer_sk,
            COUNT(DISTINCT ss_ticket_number) AS orders_count,
            COUNT(ss_item_sk) AS orders_items,
            SUM(ss_net_paid) AS orders_money
          FROM store_sales
          GROUP BY ss_customer_sk
        ) orders
        LEFT JOIN (
          SELECT
            sr_customer_sk,
            COUNT(DISTINCT sr_ticket_number) AS returns_count,
            COUNT(sr_item_sk) AS returns_items,
            SUM(sr_return_amt) AS returns_money
          FROM store_returns
          GROUP BY sr_customer_sk
        ) returned ON ss_customer_sk = sr_customer_sk
        ORDER BY user_sk
    """)


def q21(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q21: Store purchases returned and re-bought online"""
    return spark.sql("""
        SELECT
          part_i.i_item_id AS i_item_id,
          part_i.i_item_desc AS i_item_desc,
          part_s.s_store_id AS s_store_id,
          part_s.s_store_name AS s_store_name,
          SUM(part_ss.ss_quantity) AS store_sales_quantity,
          SUM(part_sr.sr_return_quantity) AS store_returns_quantity,
          SUM(part_ws.ws_quantity) AS web_sales_quantity
        FROM (
          SELECT sr_item_sk, sr_customer_sk, sr_ticket_number, sr_return_quantity
          FROM store_returns sr
          JOIN date_dim d2 ON sr.sr_returned_date_sk = d2.d_date_sk
          WHERE d2.d_year = 2003 AND d2.d_moy BETWEEN 1 AND 1 + 6
        ) part_sr
        JOIN (
          SELECT ws_item_sk, ws_bill_customer_sk, ws_quantity
          FROM web_sales ws
          JOIN date_dim d3 ON ws.ws_sold_date_sk = d3.d_date_sk
          WHERE d3.d_year BETWEEN 2003 AND 2003 + 1
        ) part_ws
          ON part_sr.sr_item_sk = part_ws.ws_item_sk
         AND part_sr.sr_customer_sk = part_ws.ws_bill_customer_sk
        JOIN (
          SELECT ss_item_sk, ss_store_sk, ss_customer_sk, ss_ticket_number, ss_quantity
          FROM store_sales ss
          JOIN date_dim d1 ON ss.ss_sold_date_sk = d1.d_date_sk
          WHERE d1.d_year = 2003 AND d1.d_moy = 1
        ) part_ss
          ON part_ss.ss_ticket_number = part_sr.sr_ticket_number
         AND part_ss.ss_item_sk = part_sr.sr_item_sk
         AND part_ss.ss_customer_sk = part_sr.sr_customer_sk
        JOIN store part_s ON part_s.s_store_sk = part_ss.ss_store_sk
        JOIN item part_i ON part_i.i_item_sk = part_ss.ss_item_sk
        GROUP BY part_i.i_item_id, part_i.i_item_desc, part_s.s_store_id, part_s.s_store_name
        ORDER BY part_i.i_item_id, part_i.i_item_desc, part_s.s_store_id, part_s.s_store_name
        LIMIT 100
    """)


def q22(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q22: Inventory change around a price change"""
    return spark.sql("""
        SELECT w_warehouse_name, i_item_id, inv_before, inv_after
        FROM (
          SELECT
            w_warehouse_name,
            i_item_id,
            SUM(CASE WHEN datediff(d_date, '2001-05-08') < 0
                THEN inv_quantity_on_hand ELSE 0 END) AS inv_before,
            SUM(CASE WHEN datediff(d_date, '2001-05-08') >= 0
                THEN inv_quantity_on_hand ELSE 0 END) AS inv_after
          FROM inventory inv
          JOIN item i ON i.i_item_sk = inv.inv_item_sk
          JOIN warehouse w ON inv.inv_warehouse_sk = w.w_warehouse_sk
          JOIN date_dim d ON inv.inv_date_sk = d.d_date_sk
          WHERE i.i_current_price BETWEEN 0.98 AND 1.5
            AND datediff(d_date, '2001-05-08') BETWEEN -30 AND 30
          GROUP BY w_warehouse_name, i_item_id
        ) name_grouped
        WHERE inv_before > 0
          AND inv_after / NULLIF(inv_before, 0) BETWEEN 2.0 / 3.0 AND 3.0 / 2.0
        ORDER BY w_warehouse_name, i_item_id
        LIMIT 100
    """)


def q23(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q23: Items with high inventory variation in consecutive months"""
    return spark.sql("""
        WITH temp_table AS (
          SELECT inv_warehouse_sk, inv_item_sk, d_moy, stdev / NULLIF(mean, 0) AS cov
          FROM (
            SELECT
              inv_warehouse_sk,
              inv_item_sk,
              d_moy,
              stddev_samp(inv_quantity_on_hand) AS stdev,
              avg(inv_quantity_on_hand) AS mean
            FROM inventory inv
            JOIN date_dim d
              ON inv.inv_date_sk = d.d_date_sk AND d.d_year = 2001 AND d.d_moy BETWEEN 1 AND 2
            GROUP BY inv_warehouse_sk, inv_item_sk, d_moy
          ) q23_tmp_inv_part
          WHERE mean > 0 AND stdev / NULLIF(mean, 0) >= 1.3
        )
        SELECT
          inv1.inv_warehouse_sk,
          inv1.inv_item_sk,
          inv1.d_moy AS d_moy_1,
          inv1.cov AS cov_1,
          inv2.d_moy AS d_moy_2,
          inv2.cov AS cov_2
        FROM temp_table inv1
        JOIN temp_table inv2
          ON inv1.inv_warehouse_sk = inv2.inv_warehouse_sk
         AND inv1.inv_item_sk = inv2.inv_item_sk
         AND inv1.d_moy = 1
         AND inv2.d_moy = 1 + 1
        ORDER BY inv1.inv_warehouse_sk, inv1.inv_item_sk
    """)


def q24(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q24: Cross-price elasticity of demand for a product"""
    return spark.sql("""
        WITH temp_table AS (
          SELECT
            i_item_sk,
            imp_sk,
            (imp_competitor_price - i_current_price) / NULLIF(i_current_price, 0) AS price_change,
            imp_start_date,
            (imp_end_date - imp_start_date) AS no_days
          FROM item i
          JOIN item_marketprices imp ON i.i_item_sk = imp.imp_item_sk
          WHERE i.i_item_sk IN (10000)
            AND imp.imp_competitor_price < i.i_current_price
        )
        SELECT
          ws_item_sk,
          avg((current_ss_quant + current_ws_quant - prev_ss_quant - prev_ws_quant)
              / NULLIF((prev_ss_quant + prev_ws_quant) * ws.price_change, 0)) AS cross_price_elasticity
        FROM (
          SELECT
            ws_item_sk,
            imp_sk,
            price_change,
            SUM(CASE WHEN ws_sold_date_sk >= c.imp_start_date
                      AND ws_sold_date_sk < c.imp_start_date + c.no_days
                 THEN ws_quantity ELSE 0 END) AS current_ws_quant,
            SUM(CASE WHEN ws_sold_date_sk >= c.imp_start_date - c.no_days
                      AND ws_sold_date_sk < c.imp_start_date
                 THEN ws_quantity ELSE 0 END) AS prev_ws_quant
          FROM web_sales ws
          JOIN temp_table c ON ws.ws_item_sk = c.i_item_sk
          GROUP BY ws_item_sk, imp_sk, price_change
        ) ws
        JOIN (
          SELECT
            ss_item_sk,
            imp_sk,
            price_change,
            SUM(CASE WHEN ss_sold_date_sk >= c.imp_start_date
                      AND ss_sold_date_sk < c.imp_start_date + c.no_days
                 THEN ss_quantity ELSE 0 END) AS current_ss_quant,
            SUM(CASE WHEN ss_sold_date_sk >= c.imp_start_date - c.no_days
                      AND ss_sold_date_sk < c.imp_start_date
                 THEN ss_quantity ELSE 0 END) AS prev_ss_quant
          FROM store_sales ss
          JOIN temp_table c ON c.i_item_sk = ss.ss_item_sk
          GROUP BY ss_item_sk, imp_sk, price_change
        ) ss
          ON ws.ws_item_sk = ss.ss_item_sk AND ws.imp_sk = ss.imp_sk
        GROUP BY ws.ws_item_sk
    """)


def q25(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q25: Recency, frequency and monetary customer features"""
    return spark.sql("""
        WITH purchases AS (
          SELECT
            ss_customer_sk AS cid,
            COUNT(DISTINCT ss_ticket_number) AS frequency,
            MAX(ss_sold_date_sk) AS most_recent_date,
            SUM(ss_net_paid) AS amount
          FROM store_sales ss
          JOIN date_dim d ON ss.ss_sold_date_sk = d.d_date_sk
          WHERE d.d_date > '2002-01-02' AND ss_customer_sk IS NOT NULL
          GROUP BY ss_customer_sk
          UNION ALL
          SELECT
            ws_bill_customer_sk AS cid,
            COUNT(DISTINCT ws_order_number) AS frequency,
            MAX(ws_sold_date_sk) AS most_recent_date,
            SUM(ws_net_paid) AS amount
          FROM web_sales ws
          JOIN date_dim d ON ws.ws_sold_date_sk = d.d_date_sk
          WHERE d.d_date > '2002-01-02' AND ws_bill_customer_sk IS NOT NULL
          GROUP BY ws_bill_customer_sk
        )
        SELECT
          cid,
          CASE WHEN 37621 - MAX(most_recent_date) < 60 THEN 1.0 ELSE 0.0 END AS recency,
          SUM(frequency) AS frequency,
          SUM(amount) AS totalspend
        FROM purchases
        GROUP BY cid
        ORDER BY cid
    """)


def q26(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q26: Book-buying customer clusters by item class"""
    class_counts = ",\n".join(
        f"COUNT(CASE WHEN i.i_class_id = {i} THEN 1 ELSE NULL END) AS id{i}"
        for i in range(1, 16)
    )
    return spark.sql(f"""
        SELECT
          ss.ss_customer_sk AS cid,
          {class_counts}
        FROM store_sales ss
        JOIN item i
          ON ss.ss_item_sk = i.i_item_sk
         AND i.i_category IN ('Books')
         AND ss.ss_customer_sk IS NOT NULL
        GROUP BY ss.ss_customer_sk
        HAVING COUNT(ss.ss_item_sk) > 5
        ORDER BY cid
    """)


def q27(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q27: Competitor names mentioned in reviews of a product"""
    raise UnsupportedQueryError("q27", "requires named-entity extraction of competitor names")


def q28(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q28: Labelled review text for sentiment classifier training

    Reviews are split 90/10 into training and testing sets by review key.
    """
    return spark.sql("""
        SELECT
          pr_review_sk,
          pr_review_rating,
          CASE WHEN pr_review_rating <= 2 THEN 'NEG'
               WHEN pr_review_rating = 3 THEN 'NEU'
               ELSE 'POS' END AS sentiment_label,
          CASE WHEN pmod(pr_review_sk, 10) = 0 THEN 'test' ELSE 'train' END AS data_split,
          pr_review_content
        FROM product_reviews
        WHERE pr_review_content IS NOT NULL
        ORDER BY pr_review_sk
    """)


def q29(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q29: Category affinity of products bought together online"""
    return spark.sql("""
        WITH order_categories AS (
          SELECT DISTINCT ws_order_number, i_category_id
          FROM web_sales ws
          JOIN item i ON ws.ws_item_sk = i.i_item_sk
          WHERE i.i_category_id IS NOT NULL
        )
        SELECT a.i_category_id AS category_id_1, b.i_category_id AS category_id_2, COUNT(*) AS cnt
        FROM order_categories a
        JOIN order_categories b
          ON a.ws_order_number = b.ws_order_number
         AND a.i_category_id < b.i_category_id
        GROUP BY a.i_category_id, b.i_category_id
        ORDER BY cnt DESC, category_id_1, category_id_2
        LIMIT 100
    """)


def q30(spark: SparkSession) -> DataFrame:
    """TPCx-BB Q30: Category affinity of products viewed together in a session"""
    item = spark.table("item").filter(F.col("i_category_id").isNotNull())
    clicks = _user_clicks(spark)
    session_categories = (
        sessionize(
            clicks
            .join(item, clicks["wcs_item_sk"] == item["i_item_sk"])
            .select("wcs_user_sk", "tstamp", "i_category_id")
        )
        .select("session_id", "i_category_id")
        .distinct()
    )
    a = session_categories.alias("a")
    b = session_categories.alias("b")
    return (
        a.join(
            b,
            (F.col("a.session_id") == F.col("b.session_id")) &
            (F.col("a.i_category_id") < F.col("b.i_category_id")),
        )
        .groupBy(
            F.col("a.i_category_id").alias("category_id_1"),
            F.col("b.i_category_id").alias("category_id_2"),
        )
        .agg(F.count("*").alias("cnt"))
        .orderBy(F.desc("cnt"), "category_id_1", "category_id_2")
        .limit(40)
    )


TPCXBB_QUERIES: Dict[str, Callable[[SparkSession], DataFrame]] = {
    "q1": q1,
    "q2": q2,
    "q3": q3,
    "q4": q4,
    "q5": q5,
    "q6": q6,
    "q7": q7,
    "q8": q8,
    "q9": q9,
    "q10": q10,
    "q11": q11,
    "q12": q12,
    "q13": q13,
    "q14": q14,
    "q15": q15,
    "q16": q16,
    "q17": q17,
    "q18": q18,
    "q19": q19,
    "q20": q20,
    "q21": q21,
    "q22": q22,
    "q23": q23,
    "q24": q24,
    "q25": q25,
    "q26": q26,
    "q27": q27,
    "q28": q28,
    "q29": q29,
    "q30": q30,
}


def get_query(query: str) -> Callable[[SparkSession], DataFrame]:
    """Resolve a query identifier such as 'q5' or '5' to its query function.

    Raises:
        UnknownQueryError: if the identifier is not a number from 1 to 30
    """
    text = str(query).strip()
    index_text = text[1:] if text.lower().startswith("q") else text
    # ASCII digits only: no sign, underscores or other scripts
    if not (index_text.isascii() and index_text.isdigit()):
        raise UnknownQueryError(text)
    query_index = int(index_text)

    query_fn = TPCXBB_QUERIES.get(f"q{query_index}")
    if query_fn is None:
        raise UnknownQueryError(query_index)
    return query_fn
