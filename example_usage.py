#!/usr/bin/env python3
"""
Пример использования Poultry Breeding Engine
на небольшом искусственном стаде асилей
"""

import logging

import pandas as pd

from poultry_breeding_engine import (
    BreedingEngine,
    FlockAnalyzer,
    FlockRepository,
    load_config,
    save_results,
)

# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)


def make_simple_flock_data():
    # 3 поколения: основатели → родители → цыплята
    birds = [
        # Основатели (нет родителей)
        {"id": "F1", "gender": "female", "father_id": "UNKNOWN", "mother_id": "UNKNOWN", "color": "Black"},
        {"id": "F2", "gender": "female", "father_id": "UNKNOWN", "mother_id": "UNKNOWN", "color": "Wheaten"},
        {"id": "M1", "gender": "male", "father_id": "UNKNOWN", "mother_id": "UNKNOWN", "color": "Black"},
        {"id": "M2", "gender": "male", "father_id": "UNKNOWN", "mother_id": "UNKNOWN", "color": "Red"},
        # Родители (их родители: основатели)
        {"id": "HEN_A", "gender": "female", "father_id": "M1", "mother_id": "F1", "color": "Black", "weight": 2400},
        {"id": "HEN_B", "gender": "female", "father_id": "M1", "mother_id": "F2", "color": "Wheaten", "weight": 2300},
        {"id": "COCK_A", "gender": "male", "father_id": "M1", "mother_id": "F1", "color": "Kaki", "weight": 3100},
        {"id": "COCK_B", "gender": "male", "father_id": "M2", "mother_id": "F2", "color": "Blue", "weight": 2900},
        # Цыплята
        {"id": "CHICK1", "gender": "female", "father_id": "COCK_A", "mother_id": "HEN_A", "color": "Black"},
        {"id": "CHICK2", "gender": "female", "father_id": "COCK_B", "mother_id": "HEN_B", "color": "Blue"},
    ]
    birds_df = pd.DataFrame(birds)
    birds_df["breed"] = "Aseel"
    birds_df["hatched_at"] = "2023-03-01"
    birds_df["health_status"] = "healthy"

    traits_df = pd.DataFrame([
        {"bird_id": "COCK_A", "trait_name": "aggression", "value": "9", "unit": "score"},
        {"bird_id": "COCK_A", "trait_name": "stamina", "value": "3", "unit": "score"},
        {"bird_id": "COCK_B", "trait_name": "stamina", "value": "8", "unit": "score"},
        {"bird_id": "HEN_A", "trait_name": "stamina", "value": "2", "unit": "score"},
        {"bird_id": "HEN_B", "trait_name": "aggression", "value": "7", "unit": "score"},
    ])
    shows_df = pd.DataFrame([
        {"bird_id": "COCK_A", "show_name": "Spring Fair", "placement": 1},
        {"bird_id": "COCK_B", "show_name": "Spring Fair", "placement": 2},
    ])
    return birds_df, traits_df, shows_df


def main():
    print("Poultry Breeding Engine - Пример для асилей (искусственные данные)")
    print("=" * 60)
    # 1. Генерируем данные
    birds_df, traits_df, shows_df = make_simple_flock_data()
    flock = FlockRepository(birds_df, traits_df, shows_df)
    config = load_config(overrides={
        'pairing': {'standard_colors': {'Aseel': ['Black', 'Red', 'Wheaten']}},
        'planner': {'pop_size': 20, 'ngen': 10, 'cxpb': 0.8, 'mutpb': 0.2, 'max_assign_per_sire': 0.5},
    })
    engine = BreedingEngine(flock, flock, flock, config=config)

    # 2. Родословная
    print(engine.pedigree_builder.format_tree(engine.compute_pedigree("CHICK1", 3).data))

    # 3. Совместимость и прогноз
    compat = engine.compute_compatibility("COCK_A", "HEN_A").data
    print(f"\nCOCK_A x HEN_A: COI={compat.coi_percent:.2f}% {compat.risk_level.value} - {compat.verdict}")
    for warning in compat.warnings:
        print(f"  ⚠️  {warning}")

    prediction = engine.predict_offspring("COCK_B", "HEN_A").data
    print(f"\nCOCK_B x HEN_A: вес {prediction.weight_range.min:.0f}-{prediction.weight_range.max:.0f} г")
    for item in prediction.color_probabilities:
        print(f"  {item.item}: {item.percentage}%")

    # 4. Подбор партнёров
    mates = engine.find_best_mates("COCK_A", top_n=3).data
    print(f"\nЛучшие партнёры для COCK_A (оценено {mates.total_evaluated}):")
    for candidate in mates.candidates:
        print(f"  {candidate.bird.id}: {candidate.pairing_score:.1f} - {candidate.recommendation}")

    # 5. План пар по стаду
    plan = engine.plan_flock_pairings(seed=42)
    if plan.ok:
        FlockAnalyzer.print_analysis_report(plan.data['stats'])
        save_results(plan.data['assignments'], "example_flock_pairing_plan.csv")
        print("\n✅ Планирование завершено успешно!")
        print("📁 Результаты сохранены в 'example_flock_pairing_plan.csv'")
    else:
        print(f"\n❌ Планирование не удалось: {plan.message}")


if __name__ == "__main__":
    main()
