import json

file_template = "../data/example_{}/metrics.json"

for i in range(1, 5):
    file = file_template.format(i)
    with open(file, encoding="utf-8") as f:
        metrics = json.load(f)

    with open(f"../data/example_{i}/true_params.json", encoding="utf-8") as f:
        true_params = json.load(f)

    print(file)
    print(f"  true clusters: {len(true_params['weights'])}")
    for model in metrics:
        print(f"  Model: {model}")
        model_metrics = metrics[model]
        print(f"    final clusters: {model_metrics['final_n_clusters']}")
        print(
            f"    mean clusters: {[round(x, 2) for x in model_metrics['mean_n_clusters']]}"
        )
        print(f"    log-likelihood rhat: {round(model_metrics['log_likelihood_rhat'], 4)}")
        print(f"    log-likelihood ess: {round(model_metrics['log_likelihood_ess'], 1)}")
        print(f"    runtimes: {[round(x, 4) for x in model_metrics['runtimes']]}")
        print(f"    mean runtime: {round(model_metrics['mean_runtime'], 4)}s")

    print()
