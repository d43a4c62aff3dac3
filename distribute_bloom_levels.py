"""
Spread every assessment-CO mapping across all Bloom levels.

Mappings are usually entered against a single Bloom level. This script
rewrites them so each (assessment, CO) pair has one mapping per Bloom level,
sharing the pair's mapped marks according to DISTRIBUTION_WEIGHTS.

Usage: python distribute_bloom_levels.py
"""
import logging
from models import db, AssessmentCOMapping, BloomLevel, Log

# Typical share of an assessment's marks per cognitive level
DISTRIBUTION_WEIGHTS = {
    'Remember': 0.15,
    'Understand': 0.20,
    'Apply': 0.30,
    'Analyze': 0.20,
    'Evaluate': 0.10,
    'Create': 0.05,
}
DEFAULT_SHARE = 0.15

def distribute_bloom_levels(distribution=None):
    """
    Create or update one mapping per Bloom level for every mapped (assessment, CO) pair.

    The pair's total mapped marks (taken before any change) are split by the
    level's share, and the share is also stored as the mapping weight.

    Returns:
        Dictionary with 'created' and 'updated' counts.
    """
    distribution = distribution or DISTRIBUTION_WEIGHTS
    bloom_levels = BloomLevel.query.order_by(BloomLevel.level_order).all()
    if not bloom_levels:
        logging.warning("No Bloom levels found; nothing to distribute")
        return {'created': 0, 'updated': 0}

    # Snapshot totals per (assessment, CO) before rewriting anything
    totals = {}
    existing = {}
    for mapping in AssessmentCOMapping.query.order_by(AssessmentCOMapping.id).all():
        pair = (mapping.assessment_id, mapping.co_id)
        totals[pair] = totals.get(pair, 0.0) + (mapping.max_marks or 0.0)
        existing[(mapping.assessment_id, mapping.co_id, mapping.bloom_level_id)] = mapping

    created = 0
    updated = 0
    try:
        for (assessment_id, co_id), total_max_marks in totals.items():
            for level in bloom_levels:
                share = distribution.get(level.name, DEFAULT_SHARE)
                mapping = existing.get((assessment_id, co_id, level.id))
                if mapping:
                    mapping.max_marks = total_max_marks * share
                    mapping.weight = share
                    updated += 1
                else:
                    db.session.add(AssessmentCOMapping(
                        assessment_id=assessment_id,
                        co_id=co_id,
                        bloom_level_id=level.id,
                        max_marks=total_max_marks * share,
                        weight=share
                    ))
                    created += 1

        log = Log(
            action="DISTRIBUTE_BLOOM_LEVELS",
            description=f"Distributed {len(totals)} assessment-CO pairs: {created} mappings created, {updated} updated"
        )
        db.session.add(log)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logging.info(f"Bloom distribution completed: {created} created, {updated} updated")
    return {'created': created, 'updated': updated}

if __name__ == "__main__":
    from app import create_app

    app = create_app()
    with app.app_context():
        print("Distributing marks across Bloom levels...")
        result = distribute_bloom_levels()
        print(f"  - New mappings created: {result['created']}")
        print(f"  - Existing mappings updated: {result['updated']}")
        print("\nDistribution weights used:")
        for level_name, share in DISTRIBUTION_WEIGHTS.items():
            print(f"  - {level_name}: {share * 100:.0f}%")
    print("Done!")
