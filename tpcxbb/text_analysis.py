"""
Lexicon-based sentiment extraction for product review text.

Review content is split into sentences; every sentence containing a word
from the positive or negative lexicon yields one row per matching word.
"""
from typing import List, Optional

from pyspark.sql import DataFrame, SparkSession
from pyspark.sql import functions as F

POSITIVE = "POS"
NEGATIVE = "NEG"

POSITIVE_WORDS = frozenset([
    "amazing", "awesome", "beautiful", "best", "better", "brilliant",
    "comfortable", "durable", "easy", "excellent", "fantastic", "favorite",
    "fine", "good", "great", "happy", "impressed", "impressive", "love",
    "loved", "nice", "perfect", "pleased", "recommend", "reliable",
    "satisfied", "solid", "superb", "sturdy", "wonderful", "worth",
])

NEGATIVE_WORDS = frozenset([
    "awful", "bad", "broke", "broken", "cheap", "complaint", "defective",
    "difficult", "disappointed", "disappointing", "fail", "failed", "faulty",
    "flimsy", "hate", "horrible", "junk", "poor", "poorly", "problem",
    "refund", "return", "returned", "terrible", "unhappy", "useless",
    "waste", "worse", "worst", "wrong",
])

SENTENCE_DELIMITER = r"[.!?]+"
WORD_DELIMITER = r"[^a-z']+"


def lexicon(spark: SparkSession, polarity: Optional[str] = None) -> DataFrame:
    """Sentiment lexicon as a (word, sentiment) DataFrame."""
    rows = []
    if polarity in (None, POSITIVE):
        rows.extend((w, POSITIVE) for w in sorted(POSITIVE_WORDS))
    if polarity in (None, NEGATIVE):
        rows.extend((w, NEGATIVE) for w in sorted(NEGATIVE_WORDS))
    return spark.createDataFrame(rows, "word string, sentiment string")


def split_sentences(df: DataFrame, text_col: str, sentence_col: str) -> DataFrame:
    """Explode text_col into one trimmed, non-empty sentence per row."""
    return (
        df
        .withColumn(sentence_col, F.explode(F.split(F.col(text_col), SENTENCE_DELIMITER)))
        .withColumn(sentence_col, F.trim(F.col(sentence_col)))
        .filter(F.length(F.col(sentence_col)) > 0)
    )


def extract_sentiment(
    spark: SparkSession,
    df: DataFrame,
    text_col: str,
    keep_cols: List[str],
    sentence_col: str = "review_sentence",
    polarity: Optional[str] = None,
) -> DataFrame:
    """Find sentiment-bearing sentences in a text column.

    Args:
        spark: SparkSession used to build the lexicon
        df: Input rows
        text_col: Column holding free text
        keep_cols: Input columns carried through to the output
        sentence_col: Name of the output sentence column
        polarity: Restrict to POS or NEG words; both when None

    Returns:
        DataFrame of keep_cols + [sentence_col, sentiment, sentiment_word],
        one distinct row per sentence and matching word
    """
    sentences = split_sentences(df.select(*keep_cols, text_col), text_col, sentence_col)
    words = sentences.withColumn(
        "word", F.explode(F.split(F.lower(F.col(sentence_col)), WORD_DELIMITER))
    )
    return (
        words
        .join(F.broadcast(lexicon(spark, polarity)), "word")
        .select(
            *keep_cols,
            sentence_col,
            "sentiment",
            F.col("word").alias("sentiment_word"),
        )
        .distinct()
    )
