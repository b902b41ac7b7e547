"""Simple script to run product searches from the command line."""

import argparse
import asyncio
import sys
from pathlib import Path

# Add current directory to path
sys.path.insert(0, str(Path(__file__).parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from storefront_search.config import SearchSettings
from storefront_search.database import SQLProductRepository
from storefront_search.initialize_embeddings import backfill_embeddings, seed_catalog
from storefront_search.logger import setup_logger
from storefront_search.search import ProductSearchEngine
from storefront_search.vector_search import hybrid_search


def print_results(results) -> None:
    if not results:
        print("No products found.")
        return
    for i, product in enumerate(results, start=1):
        print(f"{i:2d}. {product.name} [{product.brand} / {product.category}] "
              f"${product.price:.2f}  score={product.ai_score:.2f}")


def print_matches(matches) -> None:
    if not matches:
        print("No products found.")
        return
    for i, match in enumerate(matches, start=1):
        product = match.product
        print(f"{i:2d}. {product.name} [{product.brand} / {product.category}] "
              f"${product.price:.2f}  hybrid={match.hybrid_score:.2f}")


async def answer(args, engine, repository, query: str) -> None:
    if args.hybrid:
        print_matches(await hybrid_search(repository, query, args.category, args.brand, limit=args.limit))
    else:
        print_results(await engine.search(query, args.category, args.brand, args.limit))


async def run(args) -> None:
    settings = SearchSettings.from_env()
    setup_logger(log_level=settings.log_level)
    repository = SQLProductRepository(args.database_url or settings.database_url)

    if repository.count() == 0:
        print("Product catalog is empty. Seeding sample products...")
        seed_catalog(repository, args.products)
        await backfill_embeddings(repository)

    engine = ProductSearchEngine(repository, settings)
    if not args.hybrid and not await engine.initialize():
        print("Search models could not be built, using fallback search.")

    if args.query:
        await answer(args, engine, repository, args.query)
        return

    print("Type a query, or 'quit' to exit.")
    while True:
        query = input("\nsearch> ").strip()
        if query.lower() in ("quit", "exit"):
            break
        if query:
            await answer(args, engine, repository, query)


def main() -> None:
    parser = argparse.ArgumentParser(description="Search the product catalog")
    parser.add_argument("query", nargs="?", help="Query text; omit for interactive mode")
    parser.add_argument("--category", type=str, default=None, help="Exact category filter")
    parser.add_argument("--brand", type=str, default=None, help="Exact brand filter")
    parser.add_argument("--hybrid", action="store_true", help="Merge vector and text search results")
    parser.add_argument("--limit", type=int, default=10, help="Maximum number of results")
    parser.add_argument("--products", type=str, default="./data/products.json", help="Sample products file")
    parser.add_argument("--database-url", type=str, default=None, help="SQLAlchemy database URL")
    args = parser.parse_args()

    print("=" * 60)
    print("Storefront Product Search")
    print("=" * 60)
    print()

    try:
        asyncio.run(run(args))
    except (KeyboardInterrupt, EOFError):
        print("\n\nGoodbye!")
    except Exception as e:
        print(f"\nError: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
