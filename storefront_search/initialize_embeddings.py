"""Seed the product catalog and backfill stored pseudo-embeddings."""

import asyncio
import json
from typing import List, Optional

from pydantic import ValidationError

from storefront_search.config import SearchSettings
from storefront_search.database import ProductRepository, SQLProductRepository
from storefront_search.embeddings import embedding_text, generate_embedding
from storefront_search.logger import get_logger, setup_logger
from storefront_search.models import INDEX_FIELDS, Product

logger = get_logger()


def load_products(json_path: str) -> List[Product]:
    """
    Load products from JSON file.

    Args:
        json_path: Path to a JSON array of product objects

    Returns:
        List of validated products
    """
    try:
        with open(json_path, 'r', encoding='utf-8') as f:
            raw_products = json.load(f)
        products = [Product(**item) for item in raw_products]
        logger.info(f"Loaded {len(products)} products from {json_path}")
        return products
    except FileNotFoundError:
        logger.error(f"Products file not found: {json_path}")
        raise
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in products file: {str(e)}")
        raise
    except ValidationError as e:
        logger.error(f"Invalid product in {json_path}: {str(e)}")
        raise


def seed_catalog(repository: SQLProductRepository, products_path: str = "./data/products.json") -> int:
    """
    Insert the products of a JSON file that are not stored yet.

    Returns:
        Number of products inserted
    """
    products = load_products(products_path)
    if not products:
        raise ValueError("No products found in JSON file")
    return repository.add_products(products)


async def backfill_embeddings(repository: ProductRepository) -> int:
    """
    Generate and store the embedding of every product that lacks one.

    A product whose update fails is logged and skipped.

    Returns:
        Number of embeddings stored
    """
    products = await repository.find_all(INDEX_FIELDS)
    missing = [product for product in products if not product.vector_embedding]
    logger.info(f"Found {len(missing)} products without vector embeddings")

    stored = 0
    for i, product in enumerate(missing, start=1):
        try:
            embedding = generate_embedding(embedding_text(product))
            await repository.update_embedding(product.id, embedding.tolist())
            stored += 1
            logger.debug(f"Generated embedding for product {i}/{len(missing)}: {product.name}")
        except Exception as e:
            logger.error(f"Error generating embedding for {product.name}: {str(e)}")

    logger.info(f"Stored {stored} embeddings")
    return stored


def initialize_embeddings(
    products_path: Optional[str] = "./data/products.json",
    database_url: Optional[str] = None
) -> int:
    """
    Seed the catalog (when a products file is given) and backfill embeddings.

    Args:
        products_path: JSON products file, or None to skip seeding
        database_url: SQLAlchemy URL (default from settings)

    Returns:
        Number of embeddings stored
    """
    settings = SearchSettings.from_env()
    setup_logger(log_level=settings.log_level)
    repository = SQLProductRepository(database_url or settings.database_url)
    try:
        if products_path:
            seed_catalog(repository, products_path)
        return asyncio.run(backfill_embeddings(repository))
    except Exception as e:
        logger.error(f"Error initializing embeddings: {str(e)}", exc_info=True)
        raise


def main(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Seed the product catalog and generate vector embeddings")
    parser.add_argument(
        "--products",
        type=str,
        default="./data/products.json",
        help="Path to products JSON file"
    )
    parser.add_argument(
        "--no-seed",
        action="store_true",
        help="Only backfill embeddings for products already stored"
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy database URL"
    )
    args = parser.parse_args(argv)

    stored = initialize_embeddings(
        products_path=None if args.no_seed else args.products,
        database_url=args.database_url
    )
    print(f"Vector embedding generation completed ({stored} stored)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
